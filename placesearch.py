"""
Place search: free-text query → candidate locations.

Synchronous and network-free. A query is matched exactly (case-insensitive)
against country names/aliases, then capital cities. Results that still need
a coordinate or a zone carry the (0, 0) sentinel and/or `time_zone=None`;
they are resolved by geocoding when the user picks one.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

import tzcatalog

SENTINEL_COORDINATE = (0.0, 0.0)


@dataclass
class SearchResult:
    name: str
    subtitle: str
    latitude: float = 0.0
    longitude: float = 0.0
    time_zone: str | None = None  # None → resolve via geocoding on selection
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def needs_coordinate(self) -> bool:
        return (self.latitude, self.longitude) == SENTINEL_COORDINATE

    @property
    def needs_time_zone(self) -> bool:
        return self.time_zone is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "subtitle": self.subtitle,
            "lat": self.latitude,
            "lon": self.longitude,
            "tz": self.time_zone,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SearchResult":
        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            name=data["name"],
            subtitle=data.get("subtitle", ""),
            latitude=float(data.get("lat", 0.0)),
            longitude=float(data.get("lon", 0.0)),
            time_zone=data.get("tz"),
        )


def candidates_for_country(code: str, at: datetime | None = None) -> list[SearchResult]:
    """Results for a country: a placeholder, one concrete zone, or one per offset."""
    name = tzcatalog.country_name(code) or code
    zones = tzcatalog.time_zones(code, at)

    if not zones:
        return [SearchResult(name=name, subtitle="")]

    if len(zones) == 1:
        zone_id = zones[0]
        return [SearchResult(name=tzcatalog.city_name(zone_id), subtitle=name, time_zone=zone_id)]

    results = []
    for zone_id in zones:
        offset = tzcatalog.format_utc_offset(tzcatalog.utc_offset_seconds(zone_id, at))
        results.append(SearchResult(
            name=tzcatalog.city_name(zone_id),
            subtitle=f"{name} · {offset}",
            time_zone=zone_id,
        ))
    return results


def search(query: str, at: datetime | None = None) -> list[SearchResult]:
    """Resolve a query; an empty list means "not recognised"."""
    trimmed = query.strip()
    if not trimmed:
        return []

    code = tzcatalog.country_code(trimmed)
    if code:
        return candidates_for_country(code, at)

    capital_code = tzcatalog.capital_city_country_code(trimmed)
    if capital_code:
        return [SearchResult(
            name=tzcatalog.capitalize_words(trimmed.lower()),
            subtitle=tzcatalog.country_name(capital_code) or "",
        )]

    return []
