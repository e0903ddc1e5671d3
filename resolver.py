"""
Location resolver: coordinates ↔ place + IANA timezone.

Defines the GeoResolver contract the location store talks to, plus an
offline implementation. Uses tzfpy (Rust-based, no numpy/numba/scipy) for
timezone lookups.
"""

import logging
from dataclasses import dataclass
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tzfpy import get_tz

import tzcatalog

log = logging.getLogger("taptime.geo")


class GeocodeError(Exception):
    """Ocean, no result, network failure: all the same to the caller."""


@dataclass(frozen=True)
class Place:
    latitude: float
    longitude: float
    place_name: str
    country_name: str | None = None
    country_code: str | None = None
    time_zone: str | None = None


class GeoResolver(Protocol):
    async def reverse(self, latitude: float, longitude: float) -> Place: ...

    async def forward(self, query: str) -> Place: ...


def timezone_at(lat: float, lon: float) -> str | None:
    """Resolve IANA timezone from GPS coordinates."""
    return get_tz(lon, lat) or None  # tzfpy takes (lng, lat)


def is_ocean_zone(zone_id: str | None) -> bool:
    """Open water resolves to the nautical Etc/GMT±N zones (or nothing)."""
    return not zone_id or zone_id.startswith("Etc/")


def is_zone_id(text: str) -> bool:
    if "/" not in text:
        return False
    try:
        ZoneInfo(text)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


class OfflineResolver:
    """tzfpy only: names come from the zone, forward lookup accepts zone ids."""

    async def reverse(self, latitude: float, longitude: float) -> Place:
        zone_id = timezone_at(latitude, longitude)
        if is_ocean_zone(zone_id):
            raise GeocodeError(f"no land timezone at ({latitude:.4f}, {longitude:.4f})")
        code = tzcatalog.ZONE_TO_COUNTRY_CODE.get(zone_id)
        return Place(
            latitude=latitude,
            longitude=longitude,
            place_name=tzcatalog.city_name(zone_id),
            country_name=tzcatalog.country_name(code) if code else None,
            country_code=code,
            time_zone=zone_id,
        )

    async def forward(self, query: str) -> Place:
        if not is_zone_id(query):
            raise GeocodeError(f"offline resolver cannot geocode {query!r}")
        code = tzcatalog.ZONE_TO_COUNTRY_CODE.get(query)
        return Place(
            latitude=0.0,
            longitude=0.0,
            place_name=tzcatalog.city_name(query),
            country_name=tzcatalog.country_name(code) if code else None,
            country_code=code,
            time_zone=query,
        )
