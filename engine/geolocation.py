"""
Best-effort client geolocation.

Several free IP-geolocation services are tried in order; the first usable
answer wins.  All HTTP work goes through a single ``aiohttp.ClientSession``
managed via async-context-manager protocol
(``async with GeoLocator() as geo: ...``).

A failed lookup is not an error: the caller gets an empty
:class:`LocationInfo` and scoring simply awards no proximity bonus.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiohttp

from .constants import COMMON_HEADERS

logger = logging.getLogger(__name__)

_LOOKUP_TIMEOUT = 5.0


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class LocationInfo:
    """Resolved client geography.  Every field is optional."""

    city: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    region: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    isp: Optional[str] = None
    source: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def is_empty(self) -> bool:
        return not (self.country or self.country_code or self.has_coordinates)

    @property
    def label(self) -> str:
        parts = [p for p in (self.city, self.country) if p]
        return ", ".join(parts) if parts else "Unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "city": self.city,
            "country": self.country,
            "country_code": self.country_code,
            "region": self.region,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "isp": self.isp,
            "source": self.source,
        }


# ---------------------------------------------------------------------------
# Per-service parsers (pure; raise ValueError on unusable payloads)
# ---------------------------------------------------------------------------

def _text(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if isinstance(value, str) and value and value != "Unknown":
        return value
    return None


def _coords(lat: Any, lon: Any) -> Tuple[float, float]:
    try:
        lat_f, lon_f = float(lat), float(lon)
    except (TypeError, ValueError):
        raise ValueError("Invalid coordinates") from None
    if lat_f == 0.0 and lon_f == 0.0:
        raise ValueError("Invalid coordinates")
    return lat_f, lon_f


def parse_ipapi_co(data: dict) -> LocationInfo:
    if data.get("error"):
        raise ValueError(f"API error: {data.get('reason', 'Unknown')}")
    country = _text(data, "country_name")
    if country is None:
        raise ValueError("Invalid country")
    lat, lon = _coords(data.get("latitude"), data.get("longitude"))
    return LocationInfo(
        city=_text(data, "city"),
        country=country,
        country_code=_text(data, "country_code"),
        region=_text(data, "region"),
        latitude=lat,
        longitude=lon,
        isp=_text(data, "org"),
        source="ipapi.co",
    )


def parse_ip_api_com(data: dict) -> LocationInfo:
    if data.get("status") != "success":
        raise ValueError(f"API error: {data.get('message', 'Unknown')}")
    country = _text(data, "country")
    if country is None:
        raise ValueError("Invalid country")
    lat, lon = _coords(data.get("lat"), data.get("lon"))
    return LocationInfo(
        city=_text(data, "city"),
        country=country,
        country_code=_text(data, "countryCode"),
        region=_text(data, "regionName"),
        latitude=lat,
        longitude=lon,
        isp=_text(data, "isp"),
        source="ip-api.com",
    )


def parse_ipinfo_io(data: dict) -> LocationInfo:
    # ipinfo only returns a two-letter code and "lat,lon" as one string
    code = _text(data, "country")
    if code is None:
        raise ValueError("Invalid country")
    loc = data.get("loc", "")
    if not isinstance(loc, str) or "," not in loc:
        raise ValueError("Invalid coordinates")
    lat, lon = _coords(*loc.split(",", 1))
    return LocationInfo(
        city=_text(data, "city"),
        country=code,
        country_code=code,
        region=_text(data, "region"),
        latitude=lat,
        longitude=lon,
        isp=_text(data, "org"),
        source="ipinfo.io",
    )


def parse_ipwhois_app(data: dict) -> LocationInfo:
    if data.get("success") is False:
        raise ValueError(f"API error: {data.get('message', 'Unknown')}")
    country = _text(data, "country")
    if country is None:
        raise ValueError("Invalid country")
    lat, lon = _coords(data.get("latitude"), data.get("longitude"))
    return LocationInfo(
        city=_text(data, "city"),
        country=country,
        country_code=_text(data, "country_code"),
        region=_text(data, "region"),
        latitude=lat,
        longitude=lon,
        isp=_text(data, "isp"),
        source="ipwhois.app",
    )


LOOKUP_SERVICES: List[Tuple[str, str, Callable[[dict], LocationInfo]]] = [
    ("ipapi.co", "https://ipapi.co/json/", parse_ipapi_co),
    (
        "ip-api.com",
        "http://ip-api.com/json/?fields=status,message,country,countryCode,regionName,city,lat,lon,isp",
        parse_ip_api_com,
    ),
    ("ipinfo.io", "https://ipinfo.io/json", parse_ipinfo_io),
    ("ipwhois.app", "https://ipwhois.app/json/", parse_ipwhois_app),
]


# ---------------------------------------------------------------------------
# Locator
# ---------------------------------------------------------------------------

class GeoLocator:
    """Async context-manager resolving the client's location."""

    def __init__(self, timeout: float = _LOOKUP_TIMEOUT) -> None:
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> GeoLocator:
        self._session = aiohttp.ClientSession(headers=COMMON_HEADERS)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._session:
            await self._session.close()
            self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError(
                "GeoLocator must be used as an async context manager "
                "(async with GeoLocator() as geo: ...)"
            )
        return self._session

    async def _fetch_json(self, url: str) -> dict:
        session = self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with session.get(url, timeout=timeout) as resp:
            if resp.status >= 400:
                raise ValueError(f"HTTP error: {resp.status}")
            data = await resp.json(content_type=None)
        if not isinstance(data, dict):
            raise ValueError("Unexpected payload")
        return data

    async def locate(self) -> LocationInfo:
        """Return the first usable answer, or an empty ``LocationInfo``."""
        for name, url, parser in LOOKUP_SERVICES:
            try:
                data = await self._fetch_json(url)
                location = parser(data)
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError) as exc:
                logger.debug("%s geolocation failed: %s", name, exc)
                continue
            logger.debug("located via %s: %s", name, location.label)
            return location

        logger.warning("all geolocation services failed; continuing without location")
        return LocationInfo()
