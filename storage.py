"""
JSON persistence helpers and the versioned document envelope.

Documents are written as {"version": N, "<key>": [...]}. A bare JSON list is
read as a version-1 document (what older builds wrote).
"""

import json
import logging
from pathlib import Path

log = logging.getLogger("taptime")

SCHEMA_VERSION = 2


def load_json(path: Path, default=None):
    try:
        return json.loads(Path(path).read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        return default if default is not None else {}


def save_json(path: Path, data):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False, default=str) + "\n")


def document_version(data) -> int:
    if isinstance(data, list):
        return 1
    if isinstance(data, dict):
        return int(data.get("version", 1))
    return 0


def read_records(path: Path, key: str) -> tuple[list[dict], int]:
    """Records stored under `key`, plus the version they were written with."""
    data = load_json(path, [])
    version = document_version(data)
    if version == 1 and isinstance(data, list):
        records = data
    elif isinstance(data, dict):
        records = data.get(key, [])
    else:
        log.warning("Ignoring unreadable %s", path)
        return [], 0
    if version > SCHEMA_VERSION:
        log.warning("%s was written by a newer version (%d); reading best-effort", path, version)
    return [r for r in records if isinstance(r, dict)], version


def write_records(path: Path, key: str, records: list[dict]) -> None:
    save_json(path, {"version": SCHEMA_VERSION, key: records})
