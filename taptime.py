#!/usr/bin/env python3
"""
taptime — plan a meeting across time zones from the command line.

Keeps a short list of places (one per IANA zone), a meeting instant and an
anchor, and prints everyone's local time. State lives in JSON files under
TAPTIME_DATA_DIR so each invocation picks up where the last one left off.

Usage:
  taptime search India
  taptime add Tokyo
  taptime add --at 51.5074,-0.1278
  taptime add --pick 2                 # from the last search
  taptime when --at "2026-02-16 15:30" --anchor 1
  taptime list
  taptime save --name "Quarterly sync"
  taptime schedule
  taptime status
"""

import asyncio
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import schedule
import tzcatalog
from locations import MAX_LOCATIONS, AddOutcome, AddResult, RemoveOutcome, SavedLocation
from meetings import MeetingRepository
from placesearch import SearchResult
from planner import Planner
from resolver import OfflineResolver
from storage import load_json, read_records, save_json, write_records

log = logging.getLogger("taptime")

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DATA_DIR = Path(os.environ.get("TAPTIME_DATA_DIR", Path(__file__).resolve().parent))
LOCATIONS_FILE = Path(os.environ.get("TAPTIME_LOCATIONS_FILE", DATA_DIR / "locations.json"))
MEETINGS_FILE = Path(os.environ.get("TAPTIME_MEETINGS_FILE", DATA_DIR / "meetings.json"))
STATE_FILE = Path(os.environ.get("TAPTIME_STATE_FILE", DATA_DIR / "state.json"))

GEOCODER = os.environ.get("TAPTIME_GEOCODER", "nominatim")
NOMINATIM_USER_AGENT = os.environ.get("TAPTIME_NOMINATIM_USER_AGENT", "taptime")
GEOCODE_TIMEOUT = float(os.environ.get("TAPTIME_GEOCODE_TIMEOUT", 10))

USER_TZ = os.environ.get("TAPTIME_USER_TZ") or os.environ.get("TZ") or "UTC"
AUTOSAVE_DELAY = float(os.environ.get("TAPTIME_AUTOSAVE_DELAY", 0.5))

# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def make_resolver():
    if GEOCODER == "nominatim":
        from provider_nominatim import NominatimResolver
        return NominatimResolver(user_agent=NOMINATIM_USER_AGENT, timeout=GEOCODE_TIMEOUT)
    elif GEOCODER == "offline":
        return OfflineResolver()
    log.warning("Unknown geocoder %r, falling back to offline", GEOCODER)
    return OfflineResolver()


def user_zone() -> str:
    zone_id = USER_TZ.lstrip(":")
    try:
        ZoneInfo(zone_id)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning("Unknown user timezone %r, using UTC", USER_TZ)
        return "UTC"
    return zone_id


def load_locations(path: Path = LOCATIONS_FILE) -> list[SavedLocation]:
    records, _ = read_records(path, "locations")
    locations = []
    for record in records:
        try:
            locations.append(SavedLocation.from_dict(record))
        except (KeyError, TypeError, ValueError) as e:
            log.warning("Skipping unreadable location record: %s", e)
    return locations


def save_locations(locations: list[SavedLocation], path: Path = LOCATIONS_FILE):
    write_records(path, "locations", [loc.to_dict() for loc in locations])


def load_planner(resolver=None) -> tuple[Planner, dict]:
    """Rebuild the planner from disk. Returns it with the raw state dict."""
    planner = Planner(
        resolver or make_resolver(),
        MeetingRepository(MEETINGS_FILE),
        user_zone=user_zone(),
        autosave_delay=AUTOSAVE_DELAY,
    )
    state = load_json(STATE_FILE, {})
    planner.restore_state(state, load_locations())
    return planner, state


def save_planner(planner: Planner, state: dict, flush: bool = True):
    if flush:
        planner.flush()
    save_locations(planner.store.locations)
    state.update(planner.export_state())
    save_json(STATE_FILE, state)


# ---------------------------------------------------------------------------
# Arg sniffing
# ---------------------------------------------------------------------------

def _has_flag(argv: list, flag: str) -> bool:
    return flag in argv


def _get_flag_value(argv: list, flag: str) -> str | None:
    try:
        idx = argv.index(flag)
        if idx + 1 < len(argv):
            return argv[idx + 1]
    except ValueError:
        pass
    return None


def _remove_flag(argv: list, flag: str, has_value: bool = True) -> list:
    """Remove a flag (and its value) from argv."""
    result = []
    i = 0
    while i < len(argv):
        if argv[i] == flag:
            if has_value and i + 1 < len(argv):
                i += 2  # skip flag + value
            else:
                i += 1  # skip flag only
        else:
            result.append(argv[i])
            i += 1
    return result


def _parse_coordinate(text: str) -> tuple[float, float] | None:
    try:
        lat, lon = (float(part) for part in text.split(","))
    except ValueError:
        return None
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        return None
    return lat, lon


def _find_location(planner: Planner, ref: str) -> SavedLocation | None:
    """A location by list number, id prefix, zone id or name."""
    if not ref:
        return None
    locations = planner.store.locations
    if ref.isdigit():
        idx = int(ref) - 1
        return locations[idx] if 0 <= idx < len(locations) else None
    needle = ref.lower()
    for loc in locations:
        if loc.id.startswith(ref) or loc.time_zone.lower() == needle \
                or loc.location_name.lower() == needle:
            return loc
    return None


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def _print_rows(planner: Planner):
    rows = planner.rows()
    if not rows:
        print("No locations yet. Try `taptime add <place>`.")
        return
    number = {loc.id: i for i, loc in enumerate(planner.store.locations, 1)}
    for row in rows:
        marks = ("★" if row["anchor"] else " ") + ("🔒" if row["locked"] else "  ")
        print(f"{number[row['id']]:>2} {marks} {row['pill']:28s} {row['date']:>13s} "
              f"{row['time']:>8s}  {row['difference']}")


def _print_results(results: list[SearchResult]):
    for i, r in enumerate(results, 1):
        subtitle = f" — {r.subtitle}" if r.subtitle else ""
        print(f"{i:>2}. {r.name}{subtitle}")


def _report_add(result: AddResult, state: dict):
    if result.outcome is AddOutcome.SUCCESS:
        loc = result.location
        print(f"Added {loc.location_name} ({loc.time_zone})")
    elif result.outcome is AddOutcome.DUPLICATE:
        print("That time zone is already in the list")
    elif result.outcome is AddOutcome.LIMIT_REACHED:
        print(f"Maximum {MAX_LOCATIONS} locations reached")
    elif result.outcome is AddOutcome.AMBIGUOUS:
        print("That country spans several time zones, pick one with `taptime add --pick N`:")
        state["search"] = [c.to_dict() for c in result.candidates]
        _print_results(result.candidates)
    else:
        print("Could not find a time zone for that place")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def _cmd_search(planner: Planner, state: dict, argv: list):
    query = " ".join(argv)
    results = planner.search(query)
    state["search"] = [r.to_dict() for r in results]
    if not results:
        print(f"Not recognised: {query!r}")
        return
    _print_results(results)


async def _cmd_add(planner: Planner, state: dict, argv: list):
    at = _get_flag_value(argv, "--at")
    pick = _get_flag_value(argv, "--pick")

    if at is not None:
        coordinate = _parse_coordinate(at)
        if coordinate is None:
            print(f"Bad coordinate: {at!r} (expected LAT,LON)")
            return
        result = await planner.add_at(*coordinate)
    elif pick is not None:
        results = state.get("search", [])
        if not pick.isdigit() or not 1 <= int(pick) <= len(results):
            print(f"No search result #{pick}")
            return
        result = await planner.add_from_search_result(SearchResult.from_dict(results[int(pick) - 1]))
    else:
        query = " ".join(argv)
        matches = planner.search(query)
        if len(matches) == 1:
            result = await planner.add_from_search_result(matches[0])
        elif len(matches) > 1:
            state["search"] = [m.to_dict() for m in matches]
            print(f"{query!r} spans several time zones, pick one with `taptime add --pick N`:")
            _print_results(matches)
            return
        else:
            result = await planner.add_by_query(query)
    _report_add(result, state)


async def _cmd_list(planner: Planner, state: dict, argv: list):
    _print_rows(planner)


async def _cmd_remove(planner: Planner, state: dict, argv: list):
    loc = _find_location(planner, " ".join(argv))
    outcome = planner.remove(loc.id) if loc else RemoveOutcome.NOT_FOUND
    if outcome is RemoveOutcome.NOT_FOUND:
        print(f"No such location: {' '.join(argv)}")
    elif outcome is RemoveOutcome.LOCKED:
        print(f"🔒 {loc.location_name} is locked. Unlock it with `taptime lock` first.")
    else:
        print(f"Removed {loc.location_name}")


async def _cmd_lock(planner: Planner, state: dict, argv: list):
    loc = _find_location(planner, " ".join(argv))
    if loc is None:
        print(f"No such location: {' '.join(argv)}")
        return
    locked = planner.toggle_lock(loc.id)
    print(f"{'Locked' if locked else 'Unlocked'} {loc.location_name}")


async def _cmd_move(planner: Planner, state: dict, argv: list):
    at = _get_flag_value(argv, "--at")
    ref = " ".join(_remove_flag(argv, "--at"))
    loc = _find_location(planner, ref)
    coordinate = _parse_coordinate(at) if at else None
    if loc is None or coordinate is None:
        print("Usage: taptime move <location> --at LAT,LON")
        return
    result = await planner.relocate(loc.id, *coordinate)
    if result.outcome is AddOutcome.DUPLICATE:
        print("Another location already covers that time zone")
    elif result.ok:
        print(f"Moved to {result.location.location_name} ({result.location.time_zone})")
    else:
        print("Moved the pin, but no time zone was found there")


async def _cmd_clear(planner: Planner, state: dict, argv: list):
    removed = planner.clear_all()
    print(f"Cleared {removed} location(s); locked ones kept")


async def _cmd_when(planner: Planner, state: dict, argv: list):
    anchor = _get_flag_value(argv, "--anchor")
    if anchor is not None:
        if anchor == "me":
            planner.set_anchor("")
        else:
            loc = _find_location(planner, anchor)
            if loc is None:
                print(f"No such location: {anchor}")
                return
            planner.set_anchor(loc.id)

    if _has_flag(argv, "--now"):
        planner.set_pivot(datetime.now(ZoneInfo(planner.anchor_zone)))
    at = _get_flag_value(argv, "--at")
    if at is not None:
        try:
            planner.set_pivot(datetime.fromisoformat(at))
        except ValueError:
            print(f"Bad date/time: {at!r} (expected ISO 8601, e.g. 2026-02-16 15:30)")
            return
    _print_rows(planner)


async def _cmd_schedule(planner: Planner, state: dict, argv: list):
    print(planner.share_text(), end="")


async def _cmd_save(planner: Planner, state: dict, argv: list):
    name = _get_flag_value(argv, "--name")
    if name:
        meeting = planner.save_meeting(name)
        print(f"Saved meeting {meeting.name!r} ({meeting.id[:8]})")
        return
    meeting = planner.save_current()
    if meeting is None:
        print("No open meeting; use `taptime save --name NAME`")
        return
    print(f"Saved {meeting.name!r}")


async def _cmd_meetings(planner: Planner, state: dict, argv: list):
    meetings = planner.repository.recent()
    if not meetings:
        print("No saved meetings")
        return
    for m in meetings:
        current = "▶" if m.id == planner.meeting_id else " "
        modified = datetime.fromtimestamp(m.modified_at).strftime("%Y-%m-%d %H:%M")
        print(f"{current} {m.id[:8]}  {m.name:30s} {len(m.locations):>2} places  edited {modified}")


def _find_meeting(planner: Planner, ref: str):
    if not ref:
        return None
    for m in planner.repository.list():
        if m.id.startswith(ref) or m.name == ref:
            return m
    return None


async def _cmd_open(planner: Planner, state: dict, argv: list):
    meeting = _find_meeting(planner, " ".join(argv))
    if meeting is None:
        print(f"No such meeting: {' '.join(argv)}")
        return
    planner.load_meeting(meeting)
    print(f"Opened {meeting.name!r}")
    _print_rows(planner)


async def _cmd_delete(planner: Planner, state: dict, argv: list):
    meeting = _find_meeting(planner, " ".join(argv))
    if meeting is None or not planner.delete_meeting(meeting.id):
        print(f"No such meeting: {' '.join(argv)}")
        return
    print(f"Deleted {meeting.name!r}")


async def _cmd_status(planner: Planner, state: dict, argv: list):
    print(f"🕐 Your timezone: {planner.user_zone}")
    print(f"📍 Meeting timezone: {planner.anchor_zone}")
    local = planner.pivot.astimezone(ZoneInfo(planner.anchor_zone))
    print(f"📅 Meeting time: {schedule.format_date(local)}, "
          f"{schedule.clock_label(planner.anchor_zone, planner.pivot)}")
    print(f"📋 Locations: {len(planner.store)}/{MAX_LOCATIONS}")
    meeting = planner.repository.get(planner.meeting_id) if planner.meeting_id else None
    print(f"💾 Meeting: {meeting.name if meeting else '(unsaved)'}")
    print(f"🌐 Geocoder: {GEOCODER}")


async def _cmd_complete(planner: Planner, state: dict, argv: list):
    match = tzcatalog.autocomplete(" ".join(argv))
    if match:
        print(match)


COMMANDS = {
    "search": _cmd_search,
    "add": _cmd_add,
    "list": _cmd_list,
    "ls": _cmd_list,
    "rm": _cmd_remove,
    "remove": _cmd_remove,
    "lock": _cmd_lock,
    "move": _cmd_move,
    "clear": _cmd_clear,
    "when": _cmd_when,
    "schedule": _cmd_schedule,
    "save": _cmd_save,
    "meetings": _cmd_meetings,
    "open": _cmd_open,
    "delete": _cmd_delete,
    "status": _cmd_status,
    "complete": _cmd_complete,
}


async def _run(subcmd: str, argv: list):
    planner, state = load_planner()
    await COMMANDS[subcmd](planner, state, argv)
    save_planner(planner, state)


# ---------------------------------------------------------------------------
# Main dispatch
# ---------------------------------------------------------------------------

def main():
    logging.basicConfig(
        level=logging.DEBUG if "-v" in sys.argv or "--verbose" in sys.argv else logging.INFO,
        format="%(asctime)s taptime %(levelname)s %(message)s",
    )

    argv = sys.argv[1:]
    argv = _remove_flag(argv, "-v", has_value=False)
    argv = _remove_flag(argv, "--verbose", has_value=False)

    if not argv or argv[0] not in COMMANDS:
        _print_help()
        return

    asyncio.run(_run(argv[0], argv[1:]))


def _print_help():
    print("""taptime — meeting times across time zones

  search QUERY                    Country or capital → candidate places
  add QUERY | --at LAT,LON | --pick N
                                  Add a place (N = result of last search)
  list                            Local times at the meeting instant
  rm REF / lock REF               Remove / lock a place (REF = number, name or zone)
  move REF --at LAT,LON           Re-resolve a place at a new coordinate
  clear                           Remove every unlocked place
  when [--at ISO] [--now] [--anchor REF|me]
                                  Set the meeting time and its reference place
  schedule                        Print the shareable schedule
  save [--name NAME]              Save as a new meeting, or save the open one
  meetings / open REF / delete REF
  status                          Timezone, meeting and geocoder summary
  complete PREFIX                 Complete a country or city name

  -v, --verbose                   Debug logging""")


if __name__ == "__main__":
    main()
