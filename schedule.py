"""
Schedule engine: per-zone wall-clock times and differences for one pivot instant.

Everything here is a pure function of (locations, pivot instant, anchor, user
zone). Offsets are always taken at the pivot instant, so DST is whatever is
in force on the meeting date, not today.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

import tzcatalog
from locations import SavedLocation

MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
          "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


# ---------------------------------------------------------------------------
# Offsets
# ---------------------------------------------------------------------------

def local_time(zone_id: str, instant: datetime) -> datetime:
    return instant.astimezone(ZoneInfo(zone_id))


def seconds_from_gmt(zone_id: str, instant: datetime) -> int:
    return tzcatalog.utc_offset_seconds(zone_id, instant)


def offset_difference(zone_id: str, anchor_zone: str, instant: datetime) -> int:
    """Signed seconds; positive means `zone_id` is ahead of the anchor."""
    return seconds_from_gmt(zone_id, instant) - seconds_from_gmt(anchor_zone, instant)


def format_offset_difference(seconds: int) -> str:
    """Compact label: same time, +5h, +5.5h, +5:45h, -3h."""
    if seconds == 0:
        return "same time"
    sign = "+" if seconds > 0 else "-"
    hours, rem = divmod(abs(seconds), 3600)
    minutes = rem // 60
    if minutes == 0:
        return f"{sign}{hours}h"
    if minutes == 30:
        return f"{sign}{hours}.5h"
    return f"{sign}{hours}:{minutes:02d}h"


def describe_difference(seconds: int) -> str:
    """Whole hours, truncated toward zero: "2 hours ahead", "1 hour behind"."""
    hours = abs(seconds) // 3600
    if hours == 0:
        return "Same time as your location"
    unit = "hour" if hours == 1 else "hours"
    return f"{hours} {unit} {'ahead' if seconds > 0 else 'behind'}"


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

def sorted_by_offset(locations: list[SavedLocation], instant: datetime) -> list[SavedLocation]:
    return sorted(locations, key=lambda loc: seconds_from_gmt(loc.time_zone, instant))


def ordered_for_display(locations: list[SavedLocation], anchor_id: str | None,
                        instant: datetime) -> list[SavedLocation]:
    """Anchor first, everyone else ascending by offset at the pivot."""
    anchor = None
    rest = []
    for loc in locations:
        if anchor_id and loc.id == anchor_id and anchor is None:
            anchor = loc
        else:
            rest.append(loc)
    ordered = sorted_by_offset(rest, instant)
    if anchor is not None:
        ordered.insert(0, anchor)
    return ordered


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def format_time(dt: datetime) -> str:
    hour = dt.hour % 12 or 12
    return f"{hour}:{dt.minute:02d} {'AM' if dt.hour < 12 else 'PM'}"


def format_date(dt: datetime) -> str:
    return f"{MONTHS[dt.month - 1]} {dt.day}, {dt.year}"


def format_meeting_time(dt: datetime) -> str:
    return f"{format_date(dt)} at {format_time(dt)}"


def clock_label(zone_id: str, instant: datetime) -> str:
    """"AEST • 3:30 PM"."""
    local = local_time(zone_id, instant)
    return f"{local.tzname() or zone_id} • {format_time(local)}"


def time_rows(locations: list[SavedLocation], anchor_id: str | None, anchor_zone: str,
              instant: datetime) -> list[dict]:
    """View model for the time list: one row per location, anchor first."""
    rows = []
    for loc in ordered_for_display(locations, anchor_id, instant):
        local = local_time(loc.time_zone, instant)
        rows.append({
            "id": loc.id,
            "name": loc.location_name,
            "pill": tzcatalog.pill_display_name(loc.location_name, loc.time_zone, instant),
            "tz": loc.time_zone,
            "date": format_date(local),
            "time": format_time(local),
            "clock": clock_label(loc.time_zone, instant),
            "difference": format_offset_difference(
                offset_difference(loc.time_zone, anchor_zone, instant)),
            "anchor": loc.id == anchor_id,
            "locked": loc.is_locked,
        })
    return rows


def format_schedule(meeting_name: str | None, locations: list[SavedLocation],
                    anchor_zone: str, instant: datetime, user_zone: str) -> str:
    """Plain-text schedule handed to the share sheet."""
    lines = []
    if meeting_name:
        lines += [meeting_name, "=" * len(meeting_name), ""]

    lines.append(f"Meeting time zone: {anchor_zone.replace('_', ' ')}")
    lines.append(f"Meeting time: {format_meeting_time(local_time(anchor_zone, instant))} (local time)")
    lines.append("")
    lines.append("World Times Schedule")
    lines.append("")

    if anchor_zone != user_zone:
        lines.append("Your Location:")
        lines.append(format_meeting_time(local_time(user_zone, instant)))
        lines.append(user_zone)
        lines.append("")

    for loc in locations:
        lines.append(f"{loc.location_name}:")
        lines.append(format_meeting_time(local_time(loc.time_zone, instant)))
        lines.append(describe_difference(offset_difference(loc.time_zone, user_zone, instant)))
        lines.append("")

    return "\n".join(lines) + "\n"
