"""
Geocoding provider: OpenStreetMap Nominatim via geopy.

Names and coordinates come from Nominatim; the timezone always comes from
tzfpy so online and offline resolution agree on zone boundaries.
"""

import asyncio
import logging

from geopy.exc import GeopyError
from geopy.geocoders import Nominatim

from resolver import GeocodeError, Place, is_ocean_zone, timezone_at

log = logging.getLogger("taptime.geo")


def _place_name(address: dict, fallback: str) -> str:
    for key in ("city", "town", "village", "municipality", "county", "state"):
        if address.get(key):
            return address[key]
    return fallback


def _to_place(location, lat: float, lon: float, fallback: str) -> Place:
    address = location.raw.get("address", {})
    if not address.get("country") and not address.get("state"):
        # Nothing administrative here: open water or uninhabited
        raise GeocodeError(f"no country or state at ({lat:.4f}, {lon:.4f})")

    zone_id = timezone_at(lat, lon)
    code = address.get("country_code")
    return Place(
        latitude=lat,
        longitude=lon,
        place_name=_place_name(address, fallback),
        country_name=address.get("country"),
        country_code=code.upper() if code else None,
        time_zone=None if is_ocean_zone(zone_id) else zone_id,
    )


class NominatimResolver:
    def __init__(self, user_agent: str = "taptime", timeout: float = 10):
        self.geolocator = Nominatim(user_agent=user_agent, timeout=timeout)

    def _reverse(self, latitude: float, longitude: float) -> Place:
        try:
            location = self.geolocator.reverse(
                (latitude, longitude), language="en", addressdetails=True, exactly_one=True,
            )
        except GeopyError as e:
            raise GeocodeError(str(e)) from e
        if location is None:
            raise GeocodeError(f"nothing at ({latitude:.4f}, {longitude:.4f})")
        return _to_place(location, latitude, longitude, fallback=location.address)

    def _forward(self, query: str) -> Place:
        try:
            location = self.geolocator.geocode(
                query, language="en", addressdetails=True, exactly_one=True,
            )
        except GeopyError as e:
            raise GeocodeError(str(e)) from e
        if location is None:
            raise GeocodeError(f"no result for {query!r}")
        return _to_place(location, location.latitude, location.longitude, fallback=query)

    async def reverse(self, latitude: float, longitude: float) -> Place:
        log.debug("reverse geocode (%.4f, %.4f)", latitude, longitude)
        return await asyncio.to_thread(self._reverse, latitude, longitude)

    async def forward(self, query: str) -> Place:
        log.debug("forward geocode %r", query)
        return await asyncio.to_thread(self._forward, query)
