#!/usr/bin/env python3
"""
Tests for saved meetings: the record format, legacy migration, the
repository, and the debounced auto-saver.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(__file__))

import asyncio
import json
import logging
import tempfile
from pathlib import Path

from locations import SavedLocation
from meetings import AutoSaver, Meeting, MeetingRepository, migrate_meeting_record
from storage import SCHEMA_VERSION, load_json, read_records


def sample_meeting(name="Weekly sync"):
    return Meeting(
        name=name,
        locations=[SavedLocation(35.68, 139.69, "Asia/Tokyo", "Japan/Tokyo", is_locked=True),
                   SavedLocation(51.51, -0.13, "Europe/London", "United Kingdom/London")],
        selected_location_id="",
        date_timestamp=1771255800.0,
    )


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

def test_meeting_round_trip():
    meeting = sample_meeting()
    meeting.selected_location_id = meeting.locations[0].id
    data = json.loads(json.dumps(meeting.to_dict()))
    assert data["selectedLocationID"] == meeting.locations[0].id
    assert Meeting.from_dict(data) == meeting
    print("✅ meeting round-trips through JSON")


def test_legacy_meeting_backfill():
    record = sample_meeting().to_dict()
    del record["createdAt"]
    del record["modifiedAt"]
    migrated = migrate_meeting_record(record)
    assert migrated["createdAt"] == record["dateTimestamp"]
    assert migrated["modifiedAt"] == record["dateTimestamp"]
    assert "createdAt" not in record, "input must not be modified"

    meeting = Meeting.from_dict(record)
    assert meeting.created_at == meeting.modified_at == 1771255800.0
    print("✅ legacy meetings get timestamps from their date")


def test_meeting_is_a_snapshot():
    live = [SavedLocation(0, 0, "Asia/Tokyo", "Japan/Tokyo")]
    meeting = Meeting(name="m", locations=live)
    live[0].location_name = "changed"
    live.append(SavedLocation(0, 0, "Europe/Paris", "France/Paris"))
    assert [l.location_name for l in meeting.locations] == ["Japan/Tokyo"]
    print("✅ meetings copy their locations")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

def test_upsert_keeps_created_at():
    repo = MeetingRepository()
    meeting = sample_meeting()
    first = repo.save(meeting, now=100.0)
    assert (first.created_at, first.modified_at) == (100.0, 100.0)

    meeting.name = "Renamed"
    second = repo.save(meeting, now=200.0)
    assert len(repo) == 1
    assert second.created_at == 100.0
    assert second.modified_at == 200.0
    assert repo.get(meeting.id).name == "Renamed"
    print("✅ save upserts by id")


def test_recent_and_delete():
    repo = MeetingRepository()
    a, b, c = sample_meeting("a"), sample_meeting("b"), sample_meeting("c")
    repo.save(a, now=10.0)
    repo.save(b, now=30.0)
    repo.save(c, now=20.0)
    assert [m.name for m in repo.list()] == ["a", "b", "c"]
    assert [m.name for m in repo.recent()] == ["b", "c", "a"]

    assert repo.delete(b) is True
    assert repo.delete(b.id) is False
    assert b.id not in repo and a.id in repo
    print("✅ recent ordering and idempotent delete")


def test_file_persistence_and_v1_migration():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "meetings.json"
        legacy = sample_meeting().to_dict()
        del legacy["createdAt"]
        del legacy["modifiedAt"]
        path.write_text(json.dumps([legacy, {"garbage": True}]))

        repo = MeetingRepository(path)
        assert len(repo) == 1
        assert repo.list()[0].created_at == legacy["dateTimestamp"]

        repo.save(sample_meeting("new"), now=300.0)
        data = load_json(path)
        assert data["version"] == SCHEMA_VERSION
        assert len(data["meetings"]) == 2

        records, version = read_records(path, "meetings")
        assert version == SCHEMA_VERSION and len(records) == 2
        assert len(MeetingRepository(path)) == 2
    print("✅ v1 files load and are rewritten as v2")


def test_corrupt_file_loads_empty():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "meetings.json"
        path.write_text("{not json")
        assert len(MeetingRepository(path)) == 0
        assert len(MeetingRepository(Path(tmp) / "missing.json")) == 0
    print("✅ missing or corrupt files load as empty")


# ---------------------------------------------------------------------------
# Auto-save
# ---------------------------------------------------------------------------

def test_debounce_coalesces():
    async def run():
        state = {"value": 0}
        saves = []
        saver = AutoSaver(lambda: saves.append(state["value"]), delay=0.1)
        for value in (1, 2, 3):
            state["value"] = value
            saver.trigger()
            await asyncio.sleep(0.02)
        assert saves == []
        assert saver.pending
        await asyncio.sleep(0.2)
        return saves, saver.pending

    saves, pending = asyncio.run(run())
    assert saves == [3]
    assert not pending
    print("✅ three quick edits → one save with the final state")


def test_suppressed_and_flush():
    async def run():
        saves = []
        saver = AutoSaver(lambda: saves.append(len(saves)), delay=10)
        with saver.suppressed():
            saver.trigger()
        assert not saver.pending

        saver.trigger()
        assert saver.pending
        saver.flush()
        assert saves == [0] and not saver.pending

        saver.trigger()
        saver.cancel()
        await asyncio.sleep(0)
        return saves

    assert asyncio.run(run()) == [0]
    print("✅ suppression, flush and cancel")


def test_failed_autosave_is_logged():
    records = []

    class ListHandler(logging.Handler):
        def emit(self, record):
            records.append(record)

    def broken_save():
        raise OSError("disk full")

    async def run():
        saver = AutoSaver(broken_save, delay=0.01)
        saver.trigger()
        await asyncio.sleep(0.05)
        return saver.pending

    handler = ListHandler()
    logger = logging.getLogger("taptime")
    logger.addHandler(handler)
    try:
        pending = asyncio.run(run())
    finally:
        logger.removeHandler(handler)

    assert not pending
    failures = [r for r in records if r.getMessage() == "Auto-save failed"]
    assert len(failures) == 1
    assert failures[0].exc_info[0] is OSError
    print("✅ a failing auto-save is logged, not lost")


def test_trigger_without_loop_saves_now():
    saves = []
    saver = AutoSaver(lambda: saves.append(1))
    saver.trigger()
    assert saves == [1]
    print("✅ no event loop → immediate save")


if __name__ == "__main__":
    test_meeting_round_trip()
    test_legacy_meeting_backfill()
    test_meeting_is_a_snapshot()
    test_upsert_keeps_created_at()
    test_recent_and_delete()
    test_file_persistence_and_v1_migration()
    test_corrupt_file_loads_empty()
    test_debounce_coalesces()
    test_suppressed_and_flush()
    test_failed_autosave_is_logged()
    test_trigger_without_loop_saves_now()
    print("\n🎉 All tests passed!")
