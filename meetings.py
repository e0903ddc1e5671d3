"""
Saved meetings: named snapshots of the location list, anchor and pivot date,
plus the debounced auto-saver that writes edits back to the active meeting.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path

from locations import SavedLocation
from storage import read_records, write_records

log = logging.getLogger("taptime")

AUTOSAVE_DELAY = 0.5


@dataclass
class Meeting:
    name: str
    locations: list[SavedLocation]
    selected_location_id: str = ""  # "" → anchored on the user's own zone
    date_timestamp: float = 0.0
    created_at: float = field(default_factory=time.time)
    modified_at: float = field(default_factory=time.time)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        # Value snapshot: later edits to the live list must not leak in
        self.locations = [loc.copy() for loc in self.locations]

    @property
    def pivot(self) -> datetime:
        return datetime.fromtimestamp(self.date_timestamp, tz=timezone.utc)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "locations": [loc.to_dict() for loc in self.locations],
            "selectedLocationID": self.selected_location_id,
            "dateTimestamp": self.date_timestamp,
            "createdAt": self.created_at,
            "modifiedAt": self.modified_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Meeting":
        data = migrate_meeting_record(data)
        return cls(
            id=data["id"],
            name=data["name"],
            locations=_read_locations(data["locations"]),
            selected_location_id=data.get("selectedLocationID", ""),
            date_timestamp=float(data["dateTimestamp"]),
            created_at=float(data["createdAt"]),
            modified_at=float(data["modifiedAt"]),
        )


def _read_locations(records: list[dict]) -> list[SavedLocation]:
    locations = []
    for record in records:
        try:
            locations.append(SavedLocation.from_dict(record))
        except (KeyError, TypeError, ValueError) as e:
            log.warning("Skipping unreadable location in meeting: %s", e)
    return locations


def migrate_meeting_record(record: dict) -> dict:
    """Version 1 records had no timestamps: backfill both from the meeting date."""
    migrated = dict(record)
    migrated.setdefault("createdAt", record["dateTimestamp"])
    migrated.setdefault("modifiedAt", record["dateTimestamp"])
    return migrated


class MeetingRepository:
    """Meetings keyed by id. In-memory when `path` is None."""

    def __init__(self, path: Path | None = None):
        self.path = Path(path) if path else None
        self._meetings: list[Meeting] = []
        if self.path:
            self._load()

    def _load(self) -> None:
        records, version = read_records(self.path, "meetings")
        meetings = []
        for record in records:
            try:
                meetings.append(Meeting.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                log.warning("Skipping unreadable meeting record: %s", e)
        self._meetings = meetings
        if version == 1 and meetings:
            log.info("Migrating %d meetings from schema v1", len(meetings))

    def _persist(self) -> None:
        if self.path:
            write_records(self.path, "meetings", [m.to_dict() for m in self._meetings])

    def __len__(self) -> int:
        return len(self._meetings)

    def __contains__(self, meeting_id: str) -> bool:
        return self.get(meeting_id) is not None

    def get(self, meeting_id: str) -> Meeting | None:
        for meeting in self._meetings:
            if meeting.id == meeting_id:
                return meeting
        return None

    def list(self) -> list[Meeting]:
        return list(self._meetings)

    def recent(self) -> list[Meeting]:
        return sorted(self._meetings, key=lambda m: m.modified_at, reverse=True)

    def save(self, meeting: Meeting, now: float | None = None) -> Meeting:
        """Upsert by id. Updates keep the original creation time."""
        now = time.time() if now is None else now
        existing = self.get(meeting.id)
        if existing is not None:
            stored = replace(meeting, created_at=existing.created_at, modified_at=now)
            self._meetings[self._meetings.index(existing)] = stored
        else:
            stored = replace(meeting, created_at=now, modified_at=now)
            self._meetings.append(stored)
        self._persist()
        log.debug("Saved meeting %r (%s)", stored.name, stored.id)
        return stored

    def delete(self, meeting) -> bool:
        meeting_id = meeting if isinstance(meeting, str) else meeting.id
        before = len(self._meetings)
        self._meetings = [m for m in self._meetings if m.id != meeting_id]
        if len(self._meetings) == before:
            return False
        self._persist()
        return True


class AutoSaver:
    """Debounced save: each trigger restarts the quiet-period timer."""

    def __init__(self, save, delay: float = AUTOSAVE_DELAY):
        self._save = save
        self.delay = delay
        self._task: asyncio.Task | None = None
        self._suppressed = False

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self) -> None:
        if self._suppressed:
            return
        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to defer on: nothing to coalesce with either
            self._save()
            return
        self._task = loop.create_task(self._run())

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        self._task = None
        try:
            self._save()
        except Exception:
            log.exception("Auto-save failed")

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def flush(self) -> None:
        """Run a pending save now instead of waiting out the timer."""
        if self.pending:
            self.cancel()
            self._save()

    @contextmanager
    def suppressed(self):
        """Ignore triggers while state is being restored (e.g. loading a meeting)."""
        self._suppressed = True
        try:
            yield
        finally:
            self._suppressed = False
