"""
Saved locations: the deduplicated, capacity-bounded, offset-sorted list.

One entry per IANA zone, at most MAX_LOCATIONS entries, always sorted by the
zone's current UTC offset (stable, so ties keep insertion order). Adds are
asynchronous because they may geocode; only one add may be resolving at a
time and a concurrent attempt fails immediately instead of queueing.
"""

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import placesearch
import tzcatalog
from placesearch import SearchResult
from resolver import GeocodeError, GeoResolver, Place, is_zone_id

log = logging.getLogger("taptime.store")

MAX_LOCATIONS = 10
MAX_CACHE_SIZE = 50


class AddOutcome(str, Enum):
    SUCCESS = "success"
    DUPLICATE = "duplicate"
    LIMIT_REACHED = "limit_reached"
    FAILED = "failed"
    AMBIGUOUS = "ambiguous"  # tapped a multi-offset country without a zone


class RemoveOutcome(str, Enum):
    REMOVED = "removed"
    LOCKED = "locked"
    NOT_FOUND = "not_found"


@dataclass
class SavedLocation:
    latitude: float
    longitude: float
    time_zone: str
    location_name: str
    is_locked: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def copy(self) -> "SavedLocation":
        return replace(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timeZoneIdentifier": self.time_zone,
            "locationName": self.location_name,
            "isLocked": self.is_locked,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SavedLocation":
        """Raises ValueError for a zone this interpreter's tz database lacks."""
        zone_id = data["timeZoneIdentifier"]
        try:
            ZoneInfo(zone_id)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown time zone {zone_id!r}") from e
        return cls(
            id=data["id"],
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            time_zone=zone_id,
            location_name=data["locationName"],
            is_locked=bool(data.get("isLocked", False)),
        )


@dataclass
class AddResult:
    outcome: AddOutcome
    location: SavedLocation | None = None
    coordinate: tuple[float, float] | None = None
    candidates: list[SearchResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome is AddOutcome.SUCCESS

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "location": self.location.to_dict() if self.location else None,
            "coordinate": list(self.coordinate) if self.coordinate else None,
            "candidates": [c.to_dict() for c in self.candidates],
        }


class GeocodeCache:
    """Recent reverse-geocode results keyed by coordinate, oldest evicted first."""

    def __init__(self, max_size: int = MAX_CACHE_SIZE):
        self.max_size = max_size
        self._entries: OrderedDict[str, Place] = OrderedDict()

    @staticmethod
    def _key(lat: float, lon: float) -> str:
        return f"{lat},{lon}"

    def get(self, lat: float, lon: float) -> Place | None:
        return self._entries.get(self._key(lat, lon))

    def put(self, lat: float, lon: float, place: Place) -> None:
        key = self._key(lat, lon)
        self._entries[key] = place
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)


class LocationStore:
    def __init__(self, resolver: GeoResolver, clock=None):
        self.resolver = resolver
        self.locations: list[SavedLocation] = []
        self.cache = GeocodeCache()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._resolving = False

    # -- queries ------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.locations)

    def is_full(self) -> bool:
        return len(self.locations) >= MAX_LOCATIONS

    @property
    def is_resolving(self) -> bool:
        return self._resolving

    def has_time_zone(self, zone_id: str) -> bool:
        return any(loc.time_zone == zone_id for loc in self.locations)

    def get(self, location_id: str) -> SavedLocation | None:
        for loc in self.locations:
            if loc.id == location_id:
                return loc
        return None

    def snapshot(self) -> list[SavedLocation]:
        return [loc.copy() for loc in self.locations]

    # -- sorting ------------------------------------------------------------

    def _sort(self) -> None:
        now = self._clock()
        self.locations.sort(key=lambda loc: tzcatalog.utc_offset_seconds(loc.time_zone, now))

    def _append(self, location: SavedLocation) -> SavedLocation:
        self.locations.append(location)
        self._sort()
        log.info("Added location: %s (%s)", location.location_name, location.time_zone)
        return location

    # -- adding -------------------------------------------------------------

    async def _exclusive(self, work) -> AddResult:
        if self._resolving:
            log.debug("add rejected: another add is still resolving")
            return AddResult(AddOutcome.FAILED)
        if self.is_full():
            return AddResult(AddOutcome.LIMIT_REACHED)
        self._resolving = True
        try:
            return await work()
        finally:
            self._resolving = False

    def _insert(self, lat: float, lon: float, zone_id: str, name: str) -> AddResult:
        # Re-checked after the await: the list may have changed meanwhile
        if self.has_time_zone(zone_id):
            return AddResult(AddOutcome.DUPLICATE)
        if self.is_full():
            return AddResult(AddOutcome.LIMIT_REACHED)
        location = self._append(SavedLocation(
            latitude=lat, longitude=lon, time_zone=zone_id, location_name=name,
        ))
        return AddResult(AddOutcome.SUCCESS, location=location, coordinate=(lat, lon))

    async def add_at(self, lat: float, lon: float) -> AddResult:
        """Add whatever lies under a map tap."""
        return await self._exclusive(lambda: self._resolve_tap(lat, lon))

    async def _resolve_tap(self, lat: float, lon: float) -> AddResult:
        place = self.cache.get(lat, lon)
        if place is None:
            try:
                place = await self.resolver.reverse(lat, lon)
            except GeocodeError as e:
                log.info("Geocoding failed, likely ocean or uninhabited: %s", e)
                return AddResult(AddOutcome.FAILED)
            self.cache.put(lat, lon, place)

        zone_id = place.time_zone
        if zone_id is None:
            code = place.country_code
            now = self._clock()
            if code and tzcatalog.country_has_multiple_time_zones(code, now):
                return AddResult(
                    AddOutcome.AMBIGUOUS,
                    coordinate=(lat, lon),
                    candidates=placesearch.candidates_for_country(code, now),
                )
            zones = tzcatalog.time_zones(code, now) if code else []
            if len(zones) != 1:
                log.info("No timezone for %s", place.place_name)
                return AddResult(AddOutcome.FAILED)
            zone_id = zones[0]

        return self._insert(lat, lon, zone_id, tzcatalog.location_name(zone_id, place.country_name))

    async def add_from_search_result(self, result: SearchResult) -> AddResult:
        """Add a picked search result, geocoding its name if it is a placeholder."""
        return await self._exclusive(lambda: self._resolve_search_result(result))

    async def _resolve_search_result(self, result: SearchResult) -> AddResult:
        lat, lon = result.latitude, result.longitude
        zone_id = result.time_zone
        name = tzcatalog.friendly_name(zone_id) if zone_id else None

        if result.needs_coordinate:
            try:
                place = await self.resolver.forward(result.name)
            except GeocodeError as e:
                log.info("Could not geocode %r: %s", result.name, e)
                place = None
            if place is not None:
                lat, lon = place.latitude, place.longitude
                if result.needs_time_zone and place.time_zone:
                    zone_id = place.time_zone
                    name = tzcatalog.location_name(zone_id, place.country_name)

        if zone_id is None:
            return AddResult(AddOutcome.FAILED)
        return self._insert(lat, lon, zone_id, name)

    async def add_by_query(self, query: str) -> AddResult:
        """Add an IANA zone id directly, or geocode any other place name."""
        query = query.strip()
        if not query:
            return AddResult(AddOutcome.FAILED)
        return await self._exclusive(lambda: self._resolve_query(query))

    async def _resolve_query(self, query: str) -> AddResult:
        if is_zone_id(query):
            if self.has_time_zone(query):
                return AddResult(AddOutcome.DUPLICATE)
            lat, lon, country = 0.0, 0.0, None
            try:
                place = await self.resolver.forward(tzcatalog.city_name(query))
                lat, lon, country = place.latitude, place.longitude, place.country_name
            except GeocodeError as e:
                log.info("No coordinate for %s, pinning at (0, 0): %s", query, e)
            return self._insert(lat, lon, query, tzcatalog.location_name(query, country))

        try:
            place = await self.resolver.forward(query)
        except GeocodeError as e:
            log.info("Geocoding failed for query %r: %s", query, e)
            return AddResult(AddOutcome.FAILED)
        if place.time_zone is None:
            return AddResult(AddOutcome.FAILED)
        return self._insert(
            place.latitude, place.longitude, place.time_zone,
            tzcatalog.location_name(place.time_zone, place.country_name),
        )

    # -- editing ------------------------------------------------------------

    async def relocate(self, location_id: str, lat: float, lon: float) -> AddResult:
        """Re-resolve a dragged pin, keeping its id.

        If geocoding fails only the coordinate moves. A drop into a zone that
        another entry already holds leaves the entry untouched.
        """
        if self.get(location_id) is None:
            return AddResult(AddOutcome.FAILED)

        try:
            place = await self.resolver.reverse(lat, lon)
        except GeocodeError as e:
            log.info("Failed to reverse geocode dragged location: %s", e)
            place = None

        location = self.get(location_id)
        if location is None:
            return AddResult(AddOutcome.FAILED)

        if place is None or place.time_zone is None:
            location.latitude, location.longitude = lat, lon
            return AddResult(AddOutcome.FAILED, location=location, coordinate=(lat, lon))

        zone_id = place.time_zone
        if zone_id != location.time_zone and self.has_time_zone(zone_id):
            return AddResult(AddOutcome.DUPLICATE, location=location)

        location.latitude, location.longitude = lat, lon
        location.time_zone = zone_id
        location.location_name = tzcatalog.location_name(zone_id, place.country_name)
        self._sort()
        return AddResult(AddOutcome.SUCCESS, location=location, coordinate=(lat, lon))

    def remove(self, location_id: str) -> RemoveOutcome:
        """Locked entries stay put; unlock them first."""
        location = self.get(location_id)
        if location is None:
            return RemoveOutcome.NOT_FOUND
        if location.is_locked:
            log.info("Not removing locked location: %s", location.location_name)
            return RemoveOutcome.LOCKED
        self.locations.remove(location)
        return RemoveOutcome.REMOVED

    def toggle_lock(self, location_id: str) -> bool | None:
        location = self.get(location_id)
        if location is None:
            return None
        location.is_locked = not location.is_locked
        return location.is_locked

    def set_all(self, locations: list[SavedLocation]) -> None:
        """Replace the whole list (loading a meeting) with independent copies."""
        kept: list[SavedLocation] = []
        seen: set[str] = set()
        for loc in locations:
            if loc.time_zone in seen or len(kept) >= MAX_LOCATIONS:
                log.warning("Dropping %s while loading: duplicate zone or over limit",
                            loc.location_name)
                continue
            seen.add(loc.time_zone)
            kept.append(loc.copy())
        self.locations = kept
        self._sort()

    def clear_unlocked(self) -> int:
        before = len(self.locations)
        self.locations = [loc for loc in self.locations if loc.is_locked]
        return before - len(self.locations)
