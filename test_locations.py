#!/usr/bin/env python3
"""
Tests for the location store: dedup, capacity, ordering, the in-flight
guard, disambiguation, relocation and the geocode cache.

Geocoding goes through FakeResolver, so no network is involved.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(__file__))

import asyncio
from datetime import datetime, timezone

import placesearch
from locations import (
    MAX_CACHE_SIZE, MAX_LOCATIONS, AddOutcome, GeocodeCache, LocationStore, RemoveOutcome,
    SavedLocation,
)
from resolver import GeocodeError, Place

WINTER = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

# (lat, lon) → (zone, country)
WORLD = {
    (35.68, 139.69): ("Asia/Tokyo", "Japan"),
    (51.51, -0.13): ("Europe/London", "United Kingdom"),
    (40.71, -74.01): ("America/New_York", "United States"),
    (48.86, 2.35): ("Europe/Paris", "France"),
    (6.52, 3.38): ("Africa/Lagos", "Nigeria"),
    (28.61, 77.21): ("Asia/Kolkata", "India"),
    (-33.87, 151.21): ("Australia/Sydney", "Australia"),
    (-23.55, -46.63): ("America/Sao_Paulo", "Brazil"),
    (-1.29, 36.82): ("Africa/Nairobi", "Kenya"),
    (25.20, 55.27): ("Asia/Dubai", "United Arab Emirates"),
    (-36.85, 174.76): ("Pacific/Auckland", "New Zealand"),
    (41.88, -87.63): ("America/Chicago", "United States"),
    (35.70, 139.70): ("Asia/Tokyo", "Japan"),  # a second point in Tokyo
}


class FakeResolver:
    """In-memory GeoResolver. Unknown coordinates behave like open ocean."""

    def __init__(self, places=None, forwards=None, delay=0.0):
        self.places = dict(places or {})
        self.forwards = dict(forwards or {})
        self.delay = delay
        self.reverse_calls = 0
        self.forward_calls = 0

    async def reverse(self, latitude, longitude):
        self.reverse_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if (latitude, longitude) in self.places:
            return self.places[(latitude, longitude)]
        if (latitude, longitude) in WORLD:
            zone, country = WORLD[(latitude, longitude)]
            return Place(latitude, longitude, zone.split("/")[-1], country, None, zone)
        raise GeocodeError("ocean")

    async def forward(self, query):
        self.forward_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if query in self.forwards:
            return self.forwards[query]
        raise GeocodeError(f"no result for {query}")


def make_store(resolver=None):
    return LocationStore(resolver or FakeResolver(), clock=lambda: WINTER)


def add_all(store, coordinates):
    async def run():
        return [await store.add_at(*c) for c in coordinates]
    return asyncio.run(run())


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

def test_saved_location_round_trip():
    loc = SavedLocation(35.68, 139.69, "Asia/Tokyo", "Japan/Tokyo", is_locked=True)
    data = loc.to_dict()
    assert data["timeZoneIdentifier"] == "Asia/Tokyo"
    assert data["isLocked"] is True
    assert SavedLocation.from_dict(data) == loc

    del data["isLocked"]
    assert SavedLocation.from_dict(data).is_locked is False
    print("✅ SavedLocation round-trips, isLocked defaults to False")


def test_saved_location_rejects_unknown_zone():
    data = SavedLocation(0, 0, "Asia/Tokyo", "Japan/Tokyo").to_dict()
    for zone_id in ("Mars/Olympus", "Atlantis"):
        data["timeZoneIdentifier"] = zone_id
        try:
            SavedLocation.from_dict(data)
        except ValueError as e:
            assert zone_id in str(e)
        else:
            raise AssertionError(f"{zone_id} accepted")
    print("✅ records with unknown zones are rejected")


def test_geocode_cache_bounded():
    cache = GeocodeCache()
    for i in range(MAX_CACHE_SIZE + 10):
        cache.put(float(i), 0.0, Place(float(i), 0.0, f"p{i}"))
    assert len(cache) == MAX_CACHE_SIZE
    assert cache.get(0.0, 0.0) is None  # oldest evicted
    assert cache.get(float(MAX_CACHE_SIZE + 9), 0.0).place_name == f"p{MAX_CACHE_SIZE + 9}"
    print("✅ geocode cache stays bounded")


# ---------------------------------------------------------------------------
# Adding
# ---------------------------------------------------------------------------

def test_add_at_and_dedup():
    store = make_store()
    first, second = add_all(store, [(35.68, 139.69), (35.70, 139.70)])
    assert first.outcome is AddOutcome.SUCCESS
    assert first.location.location_name == "Japan/Tokyo"
    assert second.outcome is AddOutcome.DUPLICATE
    assert len(store) == 1
    print("✅ one entry per zone")


def test_add_at_ocean_fails():
    store = make_store()
    (result,) = add_all(store, [(-40.0, -30.0)])
    assert result.outcome is AddOutcome.FAILED
    assert len(store) == 0
    print("✅ ocean tap fails cleanly")


def test_capacity():
    resolver = FakeResolver()
    store = make_store(resolver)
    coords = [c for c in WORLD if c != (35.70, 139.70)]
    results = add_all(store, coords[:MAX_LOCATIONS])
    assert all(r.ok for r in results)
    assert store.is_full()

    calls = resolver.reverse_calls
    (eleventh,) = add_all(store, [coords[MAX_LOCATIONS]])
    assert eleventh.outcome is AddOutcome.LIMIT_REACHED
    assert len(store) == MAX_LOCATIONS
    assert resolver.reverse_calls == calls, "full store must not geocode"
    print("✅ capacity enforced before geocoding")


def test_sorted_by_offset():
    store = make_store()
    add_all(store, [(35.68, 139.69), (51.51, -0.13), (40.71, -74.01)])
    assert [l.time_zone for l in store.locations] == [
        "America/New_York", "Europe/London", "Asia/Tokyo",
    ]
    print("✅ locations sorted by offset")


def test_sort_stable_and_idempotent():
    store = make_store()
    # Lagos and Paris are both UTC+1 in January
    add_all(store, [(6.52, 3.38), (48.86, 2.35)])
    assert [l.time_zone for l in store.locations] == ["Africa/Lagos", "Europe/Paris"]
    before = [l.id for l in store.locations]
    store._sort()
    store._sort()
    assert [l.id for l in store.locations] == before
    print("✅ ties keep insertion order")


def test_concurrent_add_rejected():
    store = make_store(FakeResolver(delay=0.05))

    async def run():
        return await asyncio.gather(store.add_at(35.68, 139.69), store.add_at(51.51, -0.13))

    first, second = asyncio.run(run())
    assert first.outcome is AddOutcome.SUCCESS
    assert second.outcome is AddOutcome.FAILED
    assert len(store) == 1
    assert not store.is_resolving
    print("✅ second add while resolving fails fast")


def test_cache_skips_second_geocode():
    resolver = FakeResolver()
    store = make_store(resolver)
    add_all(store, [(35.68, 139.69)])
    assert store.remove(store.locations[0].id) is RemoveOutcome.REMOVED
    (again,) = add_all(store, [(35.68, 139.69)])
    assert again.ok
    assert resolver.reverse_calls == 1
    print("✅ repeated tap served from cache")


def test_ambiguous_tap():
    resolver = FakeResolver(places={
        (39.0, -98.0): Place(39.0, -98.0, "Kansas", "United States", "US", None),
        (36.0, 138.0): Place(36.0, 138.0, "Nagano", "Japan", "JP", None),
        (64.0, -19.0): Place(64.0, -19.0, "Hella", "Iceland", "IS", None),
    })
    store = make_store(resolver)
    us, jp, iceland = add_all(store, [(39.0, -98.0), (36.0, 138.0), (64.0, -19.0)])

    assert us.outcome is AddOutcome.AMBIGUOUS
    assert us.coordinate == (39.0, -98.0)
    assert [c.time_zone for c in us.candidates][0] == "Pacific/Honolulu"
    assert len(us.candidates) == 6

    assert jp.outcome is AddOutcome.SUCCESS
    assert jp.location.time_zone == "Asia/Tokyo"

    assert iceland.outcome is AddOutcome.FAILED
    assert len(store) == 1
    print("✅ multi-offset tap asks for a choice")


def test_add_from_search_result():
    tokyo = Place(35.68, 139.69, "Tokyo", "Japan", "JP", "Asia/Tokyo")
    reykjavik = Place(64.15, -21.94, "Reykjavik", "Iceland", "IS", "Atlantic/Reykjavik")
    paris = Place(48.86, 2.35, "Paris", "France", "FR", "Europe/Paris")
    store = make_store(FakeResolver(forwards={"Tokyo": tokyo, "Iceland": reykjavik, "Paris": paris}))

    async def run():
        japan = placesearch.search("Japan", WINTER)[0]
        iceland = placesearch.search("Iceland", WINTER)[0]
        capital = placesearch.search("paris", WINTER)[0]
        return [await store.add_from_search_result(r) for r in (japan, iceland, capital)]

    japan, iceland, capital = asyncio.run(run())
    assert japan.ok and japan.location.time_zone == "Asia/Tokyo"
    assert japan.coordinate == (35.68, 139.69)
    assert japan.location.location_name == "Japan/Tokyo"

    assert iceland.ok and iceland.location.time_zone == "Atlantic/Reykjavik"
    assert iceland.location.location_name == "Iceland/Reykjavik"

    assert capital.ok and capital.location.location_name == "France/Paris"
    print("✅ search results resolve on pick")


def test_concrete_result_survives_geocode_failure():
    store = make_store()
    japan = placesearch.search("Japan", WINTER)[0]
    result = asyncio.run(store.add_from_search_result(japan))
    assert result.ok
    assert result.coordinate == (0.0, 0.0)

    placeholder = placesearch.search("Iceland", WINTER)[0]
    assert asyncio.run(store.add_from_search_result(placeholder)).outcome is AddOutcome.FAILED

    seoul = Place(37.57, 126.98, "Seoul", "South Korea", "KR", "Asia/Seoul")
    store = make_store(FakeResolver(forwards={"Tokyo": seoul}))
    result = asyncio.run(store.add_from_search_result(japan))
    assert result.location.time_zone == "Asia/Tokyo"
    assert result.coordinate == (37.57, 126.98)
    print("✅ zone-bearing result keeps its zone whatever geocoding says")


def test_add_by_query():
    tokyo = Place(35.68, 139.69, "Tokyo", "Japan", "JP", "Asia/Tokyo")
    lima = Place(-12.05, -77.04, "Lima", "Peru", "PE", "America/Lima")
    store = make_store(FakeResolver(forwards={"Tokyo": tokyo, "Lima, Peru": lima}))

    async def run():
        return [await store.add_by_query(q) for q in
                ("Asia/Tokyo", "Asia/Tokyo", "   ", "Atlantis", "Lima, Peru")]

    zone, dup, empty, unknown, place = asyncio.run(run())
    assert zone.ok and zone.coordinate == (35.68, 139.69)
    assert dup.outcome is AddOutcome.DUPLICATE
    assert empty.outcome is AddOutcome.FAILED
    assert unknown.outcome is AddOutcome.FAILED
    assert place.ok and place.location.location_name == "Peru/Lima"
    print("✅ add by zone id or place name")


# ---------------------------------------------------------------------------
# Editing
# ---------------------------------------------------------------------------

def test_clear_unlocked_then_duplicate():
    store = make_store()
    add_all(store, [(51.51, -0.13), (35.68, 139.69)])
    tokyo = next(l for l in store.locations if l.time_zone == "Asia/Tokyo")
    assert store.toggle_lock(tokyo.id) is True

    assert store.clear_unlocked() == 1
    assert [l.time_zone for l in store.locations] == ["Asia/Tokyo"]

    again, london = add_all(store, [(35.70, 139.70), (51.51, -0.13)])
    assert again.outcome is AddOutcome.DUPLICATE
    assert london.ok
    print("✅ locked entries survive clear and still dedupe")


def test_relocate():
    store = make_store()
    add_all(store, [(35.68, 139.69), (51.51, -0.13)])
    tokyo = next(l for l in store.locations if l.time_zone == "Asia/Tokyo")

    async def run():
        moved = await store.relocate(tokyo.id, 48.86, 2.35)
        clash = await store.relocate(tokyo.id, 51.51, -0.13)
        ocean = await store.relocate(tokyo.id, -40.0, -30.0)
        missing = await store.relocate("nope", 48.86, 2.35)
        return moved, clash, ocean, missing

    moved, clash, ocean, missing = asyncio.run(run())
    assert moved.ok
    assert moved.location.id == tokyo.id
    assert moved.location.time_zone == "Europe/Paris"
    assert moved.location.location_name == "France/Paris"
    assert [l.time_zone for l in store.locations] == ["Europe/London", "Europe/Paris"]

    assert clash.outcome is AddOutcome.DUPLICATE
    assert store.get(tokyo.id).time_zone == "Europe/Paris"
    assert (store.get(tokyo.id).latitude, store.get(tokyo.id).longitude) == (48.86, 2.35)

    assert ocean.outcome is AddOutcome.FAILED
    assert store.get(tokyo.id).time_zone == "Europe/Paris"
    assert store.get(tokyo.id).latitude == -40.0

    assert missing.outcome is AddOutcome.FAILED
    print("✅ relocate keeps the id and never duplicates a zone")


def test_remove_and_toggle_unknown():
    store = make_store()
    assert store.remove("nope") is RemoveOutcome.NOT_FOUND
    assert store.toggle_lock("nope") is None
    print("✅ unknown ids are no-ops")


def test_locked_location_cannot_be_removed():
    store = make_store()
    add_all(store, [(35.68, 139.69), (51.51, -0.13)])
    tokyo = next(l for l in store.locations if l.time_zone == "Asia/Tokyo")
    assert store.toggle_lock(tokyo.id) is True
    before = store.snapshot()

    assert store.remove(tokyo.id) is RemoveOutcome.LOCKED
    assert store.snapshot() == before

    assert store.toggle_lock(tokyo.id) is False
    assert store.remove(tokyo.id) is RemoveOutcome.REMOVED
    assert [l.time_zone for l in store.locations] == ["Europe/London"]
    print("✅ locked locations survive remove until unlocked")


def test_set_all_dedupes_and_caps():
    store = make_store()
    incoming = [SavedLocation(0, 0, "Asia/Tokyo", "Japan/Tokyo"),
                SavedLocation(0, 0, "Asia/Tokyo", "Japan/Tokyo again")]
    zones = [z for z, _ in WORLD.values() if z != "Asia/Tokyo"]
    incoming += [SavedLocation(0, 0, z, z) for z in zones]
    store.set_all(incoming)
    assert len(store) == MAX_LOCATIONS
    assert len({l.time_zone for l in store.locations}) == MAX_LOCATIONS

    incoming[0].location_name = "mutated"
    assert all(l.location_name != "mutated" for l in store.locations)
    print("✅ set_all copies, dedupes and caps")


if __name__ == "__main__":
    test_saved_location_round_trip()
    test_saved_location_rejects_unknown_zone()
    test_geocode_cache_bounded()
    test_add_at_and_dedup()
    test_add_at_ocean_fails()
    test_capacity()
    test_sorted_by_offset()
    test_sort_stable_and_idempotent()
    test_concurrent_add_rejected()
    test_cache_skips_second_geocode()
    test_ambiguous_tap()
    test_add_from_search_result()
    test_concrete_result_survives_geocode_failure()
    test_add_by_query()
    test_clear_unlocked_then_duplicate()
    test_relocate()
    test_remove_and_toggle_unknown()
    test_locked_location_cannot_be_removed()
    test_set_all_dedupes_and_caps()
    print("\n🎉 All tests passed!")
