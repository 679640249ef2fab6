"""
Endpoint catalog.

The fixed set of candidate test targets, plus location-derived regional
hubs.  Everything here is pure: no I/O, no clocks, no randomness.
"""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .geolocation import LocationInfo


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

class KnownProvider(enum.Enum):
    """Well-known CDN operators."""

    CLOUDFLARE = "Cloudflare"
    GOOGLE = "Google"
    FASTLY = "Fastly"
    AKAMAI = "Akamai"
    AMAZON = "Amazon CloudFront"
    MICROSOFT = "Microsoft"


@dataclass(frozen=True)
class CustomProvider:
    """Any provider that is not one of :class:`KnownProvider`."""

    name: str


Provider = Union[KnownProvider, CustomProvider]

TOP_TIER_PROVIDER = KnownProvider.CLOUDFLARE


def provider_label(provider: Provider) -> str:
    if isinstance(provider, KnownProvider):
        return provider.value
    return provider.name


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Capabilities:
    supports_download: bool = True
    supports_upload: bool = False
    supports_latency: bool = True
    max_test_size_mb: int = 100
    geographic_weight: float = 0.5

    def __post_init__(self) -> None:
        if not 0.0 <= self.geographic_weight <= 1.0:
            raise ValueError(
                f"geographic_weight must be within [0, 1], got {self.geographic_weight}"
            )
        if self.max_test_size_mb < 0:
            raise ValueError("max_test_size_mb must not be negative")


@dataclass(frozen=True)
class Endpoint:
    """A candidate speed-test target.  Immutable for the lifetime of a run."""

    name: str
    url: str
    location: str
    provider: Provider
    capabilities: Capabilities = field(default_factory=Capabilities)
    country_code: Optional[str] = None
    is_backup: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    download_path: str = ""
    upload_path: str = ""

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("Endpoint name must not be empty")

    # -- Derived URLs -------------------------------------------------------

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")

    def download_url(self, size_bytes: int) -> str:
        """URL fetching roughly *size_bytes*, capped by ``max_test_size_mb``."""
        if not self.download_path:
            return self.url
        cap = self.capabilities.max_test_size_mb * 1_000_000
        if cap:
            size_bytes = min(size_bytes, cap)
        return self.base_url + self.download_path.format(bytes=max(int(size_bytes), 1))

    @property
    def upload_url(self) -> str:
        return self.base_url + self.upload_path if self.upload_path else self.url

    @property
    def is_top_tier(self) -> bool:
        return self.provider == TOP_TIER_PROVIDER

    # -- Serialisation ------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "url": self.url,
            "location": self.location,
            "provider": provider_label(self.provider),
            "country_code": self.country_code,
            "is_backup": self.is_backup,
            "supports_download": self.capabilities.supports_download,
            "supports_upload": self.capabilities.supports_upload,
            "geographic_weight": self.capabilities.geographic_weight,
        }


def validate_catalog(endpoints: Iterable[Endpoint]) -> None:
    """Raise ``ValueError`` if two endpoints share a name."""
    seen = set()
    for ep in endpoints:
        if ep.name in seen:
            raise ValueError(f"Duplicate endpoint name in catalog: {ep.name!r}")
        seen.add(ep.name)


# ---------------------------------------------------------------------------
# Global catalog
# ---------------------------------------------------------------------------

_CLOUDFLARE_DOWN = "/__down?bytes={bytes}"
_CLOUDFLARE_UP = "/__up"


def catalog() -> List[Endpoint]:
    """Return the fixed list of global CDN endpoints."""
    return [
        Endpoint(
            name="Cloudflare Global",
            url="https://speed.cloudflare.com",
            location="Global CDN",
            provider=KnownProvider.CLOUDFLARE,
            capabilities=Capabilities(
                supports_download=True,
                supports_upload=True,
                max_test_size_mb=2000,
                geographic_weight=0.5,
            ),
            is_backup=True,
            download_path=_CLOUDFLARE_DOWN,
            upload_path=_CLOUDFLARE_UP,
        ),
        Endpoint(
            name="Cloudflare Anycast",
            url="https://1.1.1.1",
            location="Global Anycast",
            provider=KnownProvider.CLOUDFLARE,
            capabilities=Capabilities(
                supports_download=True,
                supports_upload=False,
                max_test_size_mb=1,
                geographic_weight=0.6,
            ),
        ),
        Endpoint(
            name="Google Global",
            url="https://www.google.com",
            location="Global CDN",
            provider=KnownProvider.GOOGLE,
            capabilities=Capabilities(
                supports_download=True,
                supports_upload=False,
                max_test_size_mb=100,
                geographic_weight=0.4,
            ),
            is_backup=True,
        ),
        Endpoint(
            name="Fastly Edge",
            url="https://www.fastly.com",
            location="Global CDN",
            provider=KnownProvider.FASTLY,
            capabilities=Capabilities(
                supports_download=True,
                supports_upload=False,
                max_test_size_mb=50,
                geographic_weight=0.4,
            ),
        ),
        Endpoint(
            name="Amazon CloudFront",
            url="https://aws.amazon.com",
            location="Global CDN",
            provider=KnownProvider.AMAZON,
            capabilities=Capabilities(
                supports_download=True,
                supports_upload=False,
                max_test_size_mb=50,
                geographic_weight=0.4,
            ),
        ),
        Endpoint(
            name="Microsoft Edge",
            url="https://www.microsoft.com",
            location="Global CDN",
            provider=KnownProvider.MICROSOFT,
            capabilities=Capabilities(
                supports_download=True,
                supports_upload=False,
                max_test_size_mb=50,
                geographic_weight=0.3,
            ),
        ),
    ]


# ---------------------------------------------------------------------------
# Regional hubs
# ---------------------------------------------------------------------------

_LIBRESPEED = CustomProvider("LibreSpeed")

# continent -> [(name, url, location, country code, lat, lon)]
_CONTINENT_HUBS: Dict[str, List[Tuple[str, str, str, str, float, float]]] = {
    "North America": [
        ("US East Coast Hub", "https://ash.speedtest.wtnet.de", "Ashburn, USA", "US", 39.0438, -77.4874),
        ("US West Coast Hub", "https://lax.speedtest.wtnet.de", "Los Angeles, USA", "US", 34.0522, -118.2437),
    ],
    "Europe": [
        ("Europe Central Hub", "https://frankfurt.speedtest.wtnet.de", "Frankfurt, Germany", "DE", 50.1109, 8.6821),
        ("Europe West Hub", "https://lon.speedtest.wtnet.de", "London, UK", "GB", 51.5074, -0.1278),
    ],
    "Asia": [
        ("Asia Pacific Hub", "https://sg.speedtest.wtnet.de", "Singapore", "SG", 1.3521, 103.8198),
        ("Asia East Hub", "https://tokyo.speedtest.wtnet.de", "Tokyo, Japan", "JP", 35.6762, 139.6503),
    ],
    "South America": [
        ("South America Hub", "https://saopaulo.speedtest.wtnet.de", "Sao Paulo, Brazil", "BR", -23.5505, -46.6333),
    ],
    "Africa": [
        ("Africa Hub", "https://capetown.speedtest.wtnet.de", "Cape Town, South Africa", "ZA", -33.9249, 18.4241),
    ],
    "Oceania": [
        ("Oceania Hub", "https://syd.speedtest.wtnet.de", "Sydney, Australia", "AU", -33.8688, 151.2093),
    ],
}

# country code -> (name, url, location)
_COUNTRY_HUBS: Dict[str, Tuple[str, str, str]] = {
    "US": ("US Central", "https://dal.speedtest.wtnet.de", "Dallas, USA"),
    "GB": ("UK Primary", "https://lon.speedtest.wtnet.de", "London, UK"),
    "DE": ("DE Primary", "https://frankfurt.speedtest.wtnet.de", "Frankfurt, Germany"),
    "FR": ("FR Primary", "https://paris.speedtest.wtnet.de", "Paris, France"),
    "JP": ("JP Primary", "https://tyo.speedtest.wtnet.de", "Tokyo, Japan"),
    "AU": ("AU Primary", "https://syd.speedtest.wtnet.de", "Sydney, Australia"),
    "CA": ("CA Primary", "https://tor.speedtest.wtnet.de", "Toronto, Canada"),
}

_COUNTRY_ALIASES = {
    "UNITED STATES": "US",
    "UNITED KINGDOM": "GB",
    "UK": "GB",
    "GERMANY": "DE",
    "FRANCE": "FR",
    "JAPAN": "JP",
    "AUSTRALIA": "AU",
    "CANADA": "CA",
}


def determine_continent(lat: float, lon: float) -> str:
    """Coarse continent lookup from coordinate boxes."""
    if lat > 15.0 and -130.0 < lon < -50.0:
        return "North America"
    if -60.0 < lat < 15.0 and -85.0 < lon < -30.0:
        return "South America"
    if lat > 35.0 and -15.0 < lon < 60.0:
        return "Europe"
    if -40.0 < lat < 40.0 and -20.0 < lon < 55.0:
        return "Africa"
    if lat > -15.0 and 60.0 < lon < 180.0:
        return "Asia"
    if lat < -10.0 and 110.0 < lon < 180.0:
        return "Oceania"
    return "Unknown"


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    r = 6371.0
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return r * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_km(endpoint: Endpoint, location: Optional[LocationInfo]) -> Optional[float]:
    if location is None or not location.has_coordinates:
        return None
    if endpoint.latitude is None or endpoint.longitude is None:
        return None
    return haversine_km(location.latitude, location.longitude, endpoint.latitude, endpoint.longitude)


def _country_key(location: LocationInfo) -> Optional[str]:
    for raw in (location.country_code, location.country):
        if raw:
            key = raw.strip().upper()
            key = _COUNTRY_ALIASES.get(key, key)
            if key in _COUNTRY_HUBS:
                return key
    return None


def regional_hubs(location: Optional[LocationInfo]) -> List[Endpoint]:
    """Hub endpoints near *location*; empty when the location is unknown."""
    if location is None:
        return []

    hubs: List[Endpoint] = []
    names = set()
    urls = set()

    if location.has_coordinates:
        continent = determine_continent(location.latitude, location.longitude)
        for name, url, label, cc, lat, lon in _CONTINENT_HUBS.get(continent, []):
            hubs.append(
                Endpoint(
                    name=name,
                    url=url,
                    location=label,
                    provider=_LIBRESPEED,
                    capabilities=Capabilities(
                        supports_download=True,
                        supports_upload=True,
                        max_test_size_mb=2000,
                        geographic_weight=1.0,
                    ),
                    country_code=cc,
                    latitude=lat,
                    longitude=lon,
                )
            )
            names.add(name)
            urls.add(url)

    key = _country_key(location)
    if key is not None:
        name, url, label = _COUNTRY_HUBS[key]
        if name not in names and url not in urls:
            hubs.append(
                Endpoint(
                    name=name,
                    url=url,
                    location=label,
                    provider=_LIBRESPEED,
                    capabilities=Capabilities(
                        supports_download=True,
                        supports_upload=True,
                        max_test_size_mb=1000,
                        geographic_weight=0.9,
                    ),
                    country_code=key,
                )
            )

    return hubs
