"""
Planner: the single owner of all live state.

Holds the location store, the pivot instant, the anchor, and the active
meeting. Every mutation goes through a method here and returns a typed
result; edits to an active meeting are auto-saved after a quiet period.
All of it runs on one asyncio loop, so there is no locking: geocoding is
the only place anything awaits.
"""

import logging
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import placesearch
import schedule
from locations import AddResult, LocationStore, RemoveOutcome
from meetings import AUTOSAVE_DELAY, AutoSaver, Meeting, MeetingRepository
from placesearch import SearchResult
from resolver import GeoResolver

log = logging.getLogger("taptime")


class Planner:
    def __init__(self, resolver: GeoResolver, repository: MeetingRepository,
                 user_zone: str = "UTC", clock=None, autosave_delay: float = AUTOSAVE_DELAY):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.store = LocationStore(resolver, clock=self._clock)
        self.repository = repository
        self.user_zone = user_zone
        self.pivot: datetime = self._clock()
        self.anchor_id = ""
        self.meeting_name = ""
        self.meeting_id: str | None = None
        self.autosaver = AutoSaver(self._autosave, delay=autosave_delay)

    # -- derived state ------------------------------------------------------

    @property
    def anchor_zone(self) -> str:
        anchor = self.store.get(self.anchor_id) if self.anchor_id else None
        return anchor.time_zone if anchor else self.user_zone

    def rows(self) -> list[dict]:
        return schedule.time_rows(self.store.locations, self.anchor_id, self.anchor_zone, self.pivot)

    def share_text(self) -> str:
        return schedule.format_schedule(
            self.meeting_name, self.store.locations, self.anchor_zone, self.pivot, self.user_zone,
        )

    def search(self, query: str) -> list[SearchResult]:
        return placesearch.search(query, at=self._clock())

    # -- auto-save ----------------------------------------------------------

    def _changed(self) -> None:
        if self.meeting_id:
            self.autosaver.trigger()

    def _snapshot(self, meeting_id: str | None = None) -> Meeting:
        kwargs = {"id": meeting_id} if meeting_id else {}
        return Meeting(
            name=self.meeting_name,
            locations=self.store.snapshot(),
            selected_location_id=self.anchor_id,
            date_timestamp=self.pivot.timestamp(),
            **kwargs,
        )

    def _autosave(self) -> None:
        if not self.meeting_id:
            return
        if self.meeting_id not in self.repository:
            log.info("Active meeting was deleted; no longer auto-saving")
            self.meeting_id = None
            return
        self.repository.save(self._snapshot(self.meeting_id))
        log.debug("Auto-saved meeting %r", self.meeting_name)

    def flush(self) -> None:
        self.autosaver.flush()

    # -- locations ----------------------------------------------------------

    def _after_add(self, result: AddResult) -> AddResult:
        if result.ok:
            self._changed()
        return result

    async def add_at(self, lat: float, lon: float) -> AddResult:
        return self._after_add(await self.store.add_at(lat, lon))

    async def add_from_search_result(self, result: SearchResult) -> AddResult:
        return self._after_add(await self.store.add_from_search_result(result))

    async def add_by_query(self, query: str) -> AddResult:
        return self._after_add(await self.store.add_by_query(query))

    async def relocate(self, location_id: str, lat: float, lon: float) -> AddResult:
        result = await self.store.relocate(location_id, lat, lon)
        if result.coordinate is not None:
            self._changed()
        return result

    def remove(self, location_id: str) -> RemoveOutcome:
        outcome = self.store.remove(location_id)
        if outcome is not RemoveOutcome.REMOVED:
            return outcome
        if self.anchor_id == location_id:
            self.anchor_id = ""
        self._changed()
        return outcome

    def toggle_lock(self, location_id: str) -> bool | None:
        locked = self.store.toggle_lock(location_id)
        if locked is not None:
            self._changed()
        return locked

    def set_pivot(self, when: datetime) -> datetime:
        """Naive datetimes are read as wall-clock time in the anchor's zone."""
        if when.tzinfo is None:
            when = when.replace(tzinfo=ZoneInfo(self.anchor_zone))
        self.pivot = when
        self._changed()
        return when

    def set_anchor(self, location_id: str | None) -> bool:
        location_id = location_id or ""
        if location_id and self.store.get(location_id) is None:
            return False
        self.anchor_id = location_id
        self._changed()
        return True

    def clear_all(self) -> int:
        """Drop unlocked locations and start a fresh, untracked plan."""
        self.autosaver.cancel()
        self.meeting_id = None
        self.meeting_name = ""
        removed = self.store.clear_unlocked()
        self.anchor_id = ""
        self.pivot = self._clock()
        return removed

    # -- meetings -----------------------------------------------------------

    def save_meeting(self, name: str) -> Meeting:
        """Save the current plan as a new meeting and start tracking it."""
        self.meeting_name = name
        stored = self.repository.save(self._snapshot())
        self.meeting_id = stored.id
        log.info("Saved meeting %r", name)
        return stored

    def save_current(self) -> Meeting | None:
        if not self.meeting_id or self.meeting_id not in self.repository:
            return None
        self.autosaver.cancel()
        return self.repository.save(self._snapshot(self.meeting_id))

    def load_meeting(self, meeting: Meeting | str) -> Meeting | None:
        if isinstance(meeting, str):
            meeting = self.repository.get(meeting)
            if meeting is None:
                return None
        self.flush()
        with self.autosaver.suppressed():
            self.meeting_id = meeting.id
            self.store.set_all(meeting.locations)
            anchor = meeting.selected_location_id
            self.anchor_id = anchor if anchor and self.store.get(anchor) else ""
            self.pivot = meeting.pivot
            self.meeting_name = meeting.name
        log.info("Opened meeting %r", meeting.name)
        return meeting

    def delete_meeting(self, meeting_id: str) -> bool:
        deleted = self.repository.delete(meeting_id)
        if deleted and self.meeting_id == meeting_id:
            self.autosaver.cancel()
            self.meeting_id = None
        return deleted

    # -- persistence between runs --------------------------------------------

    def export_state(self) -> dict:
        return {
            "pivot": self.pivot.timestamp(),
            "anchor": self.anchor_id,
            "meeting_name": self.meeting_name,
            "meeting_id": self.meeting_id or "",
        }

    def restore_state(self, state: dict, locations) -> None:
        with self.autosaver.suppressed():
            self.store.set_all(locations)
            if "pivot" in state:
                self.pivot = datetime.fromtimestamp(float(state["pivot"]), tz=timezone.utc)
            anchor = state.get("anchor", "")
            self.anchor_id = anchor if anchor and self.store.get(anchor) else ""
            self.meeting_name = state.get("meeting_name", "")
            meeting_id = state.get("meeting_id") or None
            self.meeting_id = meeting_id if meeting_id in self.repository else None
