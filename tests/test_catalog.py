"""Tests for the endpoint catalog and regional hub derivation."""

import dataclasses
import unittest

from engine.catalog import (
    Capabilities,
    CustomProvider,
    Endpoint,
    KnownProvider,
    catalog,
    determine_continent,
    distance_km,
    haversine_km,
    provider_label,
    regional_hubs,
    validate_catalog,
)
from engine.geolocation import LocationInfo


class TestCatalog(unittest.TestCase):
    def test_has_cloudflare_backup(self):
        backups = [ep for ep in catalog() if ep.is_backup and ep.is_top_tier]
        self.assertTrue(backups)
        self.assertEqual(backups[0].provider, KnownProvider.CLOUDFLARE)

    def test_names_unique(self):
        validate_catalog(catalog())
        names = [ep.name for ep in catalog()]
        self.assertEqual(len(names), len(set(names)))

    def test_duplicate_names_rejected(self):
        eps = catalog()
        with self.assertRaises(ValueError):
            validate_catalog(eps + [eps[0]])

    def test_geographic_weights_in_range(self):
        for ep in catalog():
            self.assertGreaterEqual(ep.capabilities.geographic_weight, 0.0)
            self.assertLessEqual(ep.capabilities.geographic_weight, 1.0)

    def test_only_cloudflare_global_uploads(self):
        uploaders = [ep.name for ep in catalog() if ep.capabilities.supports_upload]
        self.assertEqual(uploaders, ["Cloudflare Global"])

    def test_catalog_returns_fresh_list(self):
        first = catalog()
        first.clear()
        self.assertTrue(catalog())


class TestEndpoint(unittest.TestCase):
    def test_frozen(self):
        ep = catalog()[0]
        with self.assertRaises(dataclasses.FrozenInstanceError):
            ep.name = "Other"

    def test_empty_name_rejected(self):
        with self.assertRaises(ValueError):
            Endpoint(name="  ", url="https://x.test", location="", provider=KnownProvider.GOOGLE)

    def test_geographic_weight_validated(self):
        with self.assertRaises(ValueError):
            Capabilities(geographic_weight=1.5)
        with self.assertRaises(ValueError):
            Capabilities(geographic_weight=-0.1)

    def test_download_url_with_path(self):
        cf = next(ep for ep in catalog() if ep.name == "Cloudflare Global")
        self.assertEqual(
            cf.download_url(100_000),
            "https://speed.cloudflare.com/__down?bytes=100000",
        )
        self.assertEqual(cf.upload_url, "https://speed.cloudflare.com/__up")

    def test_download_url_capped(self):
        ep = Endpoint(
            name="Small",
            url="https://small.test/",
            location="",
            provider=CustomProvider("Lab"),
            capabilities=Capabilities(max_test_size_mb=1),
            download_path="/dl?bytes={bytes}",
        )
        self.assertEqual(ep.download_url(5_000_000), "https://small.test/dl?bytes=1000000")

    def test_download_url_without_path(self):
        anycast = next(ep for ep in catalog() if ep.name == "Cloudflare Anycast")
        self.assertEqual(anycast.download_url(25_000_000), "https://1.1.1.1")

    def test_to_dict(self):
        d = catalog()[0].to_dict()
        self.assertEqual(d["name"], "Cloudflare Global")
        self.assertEqual(d["provider"], "Cloudflare")
        self.assertTrue(d["is_backup"])

    def test_provider_label(self):
        self.assertEqual(provider_label(KnownProvider.AMAZON), "Amazon CloudFront")
        self.assertEqual(provider_label(CustomProvider("LibreSpeed")), "LibreSpeed")


class TestGeography(unittest.TestCase):
    def test_continents(self):
        self.assertEqual(determine_continent(40.71, -74.0), "North America")
        self.assertEqual(determine_continent(-23.55, -46.63), "South America")
        self.assertEqual(determine_continent(52.52, 13.40), "Europe")
        self.assertEqual(determine_continent(35.68, 139.65), "Asia")
        self.assertEqual(determine_continent(-33.87, 151.21), "Oceania")
        self.assertEqual(determine_continent(-80.0, 0.0), "Unknown")

    def test_haversine(self):
        self.assertAlmostEqual(haversine_km(51.5074, -0.1278, 48.8566, 2.3522), 343.5, delta=5)
        self.assertAlmostEqual(haversine_km(10.0, 10.0, 10.0, 10.0), 0.0)

    def test_distance_requires_coordinates(self):
        hub = regional_hubs(LocationInfo(latitude=52.52, longitude=13.40))[0]
        self.assertIsNone(distance_km(hub, None))
        self.assertIsNone(distance_km(hub, LocationInfo(country="Germany")))
        self.assertIsNone(distance_km(catalog()[0], LocationInfo(latitude=1.0, longitude=1.0)))
        self.assertIsNotNone(distance_km(hub, LocationInfo(latitude=52.52, longitude=13.40)))


class TestRegionalHubs(unittest.TestCase):
    def test_none_location(self):
        self.assertEqual(regional_hubs(None), [])

    def test_empty_location(self):
        self.assertEqual(regional_hubs(LocationInfo()), [])

    def test_europe_with_country(self):
        loc = LocationInfo(country="France", country_code="FR", latitude=48.85, longitude=2.35)
        names = [h.name for h in regional_hubs(loc)]
        self.assertEqual(names, ["Europe Central Hub", "Europe West Hub", "FR Primary"])

    def test_country_hub_sharing_continent_url_is_dropped(self):
        loc = LocationInfo(country="United Kingdom", country_code="GB", latitude=51.5074, longitude=-0.1278)
        hubs = regional_hubs(loc)
        self.assertEqual([h.name for h in hubs], ["Europe Central Hub", "Europe West Hub"])
        urls = [h.url for h in hubs]
        self.assertEqual(len(urls), len(set(urls)))

    def test_hub_urls_unique_everywhere(self):
        cases = [
            ("DE", 52.52, 13.40),
            ("AU", -33.87, 151.21),
            ("US", 40.71, -74.00),
            ("JP", 35.68, 139.65),
        ]
        for cc, lat, lon in cases:
            with self.subTest(country=cc):
                urls = [h.url for h in regional_hubs(
                    LocationInfo(country_code=cc, latitude=lat, longitude=lon)
                )]
                self.assertEqual(len(urls), len(set(urls)))

    def test_hub_capabilities(self):
        loc = LocationInfo(latitude=52.52, longitude=13.40)
        for hub in regional_hubs(loc):
            self.assertEqual(hub.capabilities.geographic_weight, 1.0)
            self.assertTrue(hub.capabilities.supports_upload)
            self.assertIsInstance(hub.provider, CustomProvider)

    def test_country_alias_without_coordinates(self):
        names = [h.name for h in regional_hubs(LocationInfo(country="United Kingdom"))]
        self.assertEqual(names, ["UK Primary"])

    def test_unknown_country(self):
        self.assertEqual(regional_hubs(LocationInfo(country_code="ZZ")), [])


if __name__ == "__main__":
    unittest.main()
