#!/usr/bin/env python3
"""
taptime MCP server — the meeting planner as tools.

Exposes tools: search, add, list, remove, lock, move, clear, when, schedule,
save, meetings, open, delete, status, complete.
One planner lives for the whole session, so edits to an open meeting are
auto-saved after the usual quiet period rather than on every call.

Protocol: MCP (Model Context Protocol) over stdio (JSON-RPC 2.0)
"""

import asyncio
import json
import logging
import sys
from datetime import datetime
from zoneinfo import ZoneInfo

import schedule
import taptime
import tzcatalog
from locations import MAX_LOCATIONS, RemoveOutcome
from placesearch import SearchResult
from planner import Planner

log = logging.getLogger("taptime-mcp")

PLANNER: Planner | None = None
STATE: dict = {}
PERSIST = False

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _planner() -> Planner:
    global PLANNER, STATE
    if PLANNER is None:
        PLANNER, STATE = taptime.load_planner()
    return PLANNER


def _location_ref(params) -> str:
    return str(params.get("id") or params.get("ref") or "")


def _find_location(params):
    planner = _planner()
    loc = taptime._find_location(planner, _location_ref(params))
    if loc is None:
        raise ValueError(f"Location not found: {_location_ref(params)}")
    return loc


def _find_meeting(params):
    meeting = taptime._find_meeting(_planner(), str(params.get("id") or params.get("name") or ""))
    if meeting is None:
        raise ValueError(f"Meeting not found: {params.get('id') or params.get('name')}")
    return meeting


def _remember_results(results: list[SearchResult]) -> list[dict]:
    STATE["search"] = [r.to_dict() for r in results]
    return STATE["search"]

# ---------------------------------------------------------------------------
# Tool implementations
# ---------------------------------------------------------------------------

TOOLS = {}

def tool(name, description, schema):
    """Decorator to register a tool."""
    def decorator(fn):
        TOOLS[name] = {"fn": fn, "description": description, "schema": schema}
        return fn
    return decorator


@tool("search", "Look up a country or capital city; returns candidate places", {
    "type": "object",
    "properties": {"query": {"type": "string"}},
    "required": ["query"],
})
def tool_search(params):
    results = _planner().search(params["query"])
    return {"results": _remember_results(results), "recognized": bool(results)}


@tool("add", "Add a place by query, coordinate (lat/lon), or index of the last search result", {
    "type": "object",
    "properties": {
        "query": {"type": "string", "description": "Country, capital, place name or IANA zone id"},
        "lat": {"type": "number"},
        "lon": {"type": "number"},
        "pick": {"type": "integer", "description": "1-based index into the last search results"},
        "result": {"type": "object", "description": "A search result as returned by search"},
    },
})
async def tool_add(params):
    planner = _planner()
    if params.get("lat") is not None and params.get("lon") is not None:
        result = await planner.add_at(float(params["lat"]), float(params["lon"]))
    elif params.get("result"):
        result = await planner.add_from_search_result(SearchResult.from_dict(params["result"]))
    elif params.get("pick") is not None:
        results = STATE.get("search", [])
        idx = int(params["pick"]) - 1
        if not 0 <= idx < len(results):
            return {"error": f"No search result #{params['pick']}"}
        result = await planner.add_from_search_result(SearchResult.from_dict(results[idx]))
    else:
        query = params.get("query", "")
        matches = planner.search(query)
        if len(matches) > 1:
            return {"outcome": "choose", "results": _remember_results(matches)}
        if matches:
            result = await planner.add_from_search_result(matches[0])
        else:
            result = await planner.add_by_query(query)

    if result.candidates:
        _remember_results(result.candidates)
    return result.to_dict()


@tool("list", "Local time for every place at the meeting instant, anchor first", {
    "type": "object", "properties": {},
})
def tool_list(params):
    planner = _planner()
    return {"anchor_zone": planner.anchor_zone, "rows": planner.rows()}


@tool("remove", "Remove a place (by id, list number, name or zone)", {
    "type": "object",
    "properties": {"id": {"type": "string"}, "ref": {"type": "string"}},
})
def tool_remove(params):
    loc = _find_location(params)
    outcome = _planner().remove(loc.id)
    return {"ok": outcome is RemoveOutcome.REMOVED, "outcome": outcome.value,
            "name": loc.location_name}


@tool("lock", "Toggle whether a place survives clear", {
    "type": "object",
    "properties": {"id": {"type": "string"}, "ref": {"type": "string"}},
})
def tool_lock(params):
    loc = _find_location(params)
    return {"id": loc.id, "locked": _planner().toggle_lock(loc.id)}


@tool("move", "Re-resolve a place at a new coordinate (dragged pin)", {
    "type": "object",
    "properties": {
        "id": {"type": "string"}, "ref": {"type": "string"},
        "lat": {"type": "number"}, "lon": {"type": "number"},
    },
    "required": ["lat", "lon"],
})
async def tool_move(params):
    loc = _find_location(params)
    result = await _planner().relocate(loc.id, float(params["lat"]), float(params["lon"]))
    return result.to_dict()


@tool("clear", "Remove every unlocked place and start a new, unsaved plan", {
    "type": "object", "properties": {},
})
def tool_clear(params):
    return {"removed": _planner().clear_all()}


@tool("when", "Set the meeting instant and/or the anchor place", {
    "type": "object",
    "properties": {
        "at": {"type": "string", "description": "ISO 8601; without an offset it is read in the anchor's zone"},
        "anchor": {"type": "string", "description": "Place id/ref, or 'me' for your own zone"},
    },
})
def tool_when(params):
    planner = _planner()
    anchor = params.get("anchor")
    if anchor is not None:
        if anchor in ("", "me"):
            planner.set_anchor("")
        else:
            planner.set_anchor(_find_location({"ref": anchor}).id)
    if params.get("at"):
        planner.set_pivot(datetime.fromisoformat(params["at"]))
    return {
        "pivot": planner.pivot.isoformat(),
        "anchor_zone": planner.anchor_zone,
        "rows": planner.rows(),
    }


@tool("schedule", "Plain-text schedule to share", {
    "type": "object", "properties": {},
})
def tool_schedule(params):
    return {"text": _planner().share_text()}


@tool("save", "Save as a new meeting (with name) or save the open meeting", {
    "type": "object",
    "properties": {"name": {"type": "string"}},
})
def tool_save(params):
    planner = _planner()
    if params.get("name"):
        meeting = planner.save_meeting(params["name"])
    else:
        meeting = planner.save_current()
        if meeting is None:
            return {"error": "No open meeting; pass a name to save a new one"}
    return {"ok": True, "id": meeting.id, "name": meeting.name}


@tool("meetings", "Saved meetings, most recently edited first", {
    "type": "object", "properties": {},
})
def tool_meetings(params):
    planner = _planner()
    return {
        "current": planner.meeting_id,
        "meetings": [{"id": m.id, "name": m.name, "locations": len(m.locations),
                      "modifiedAt": m.modified_at} for m in planner.repository.recent()],
    }


@tool("open", "Open a saved meeting", {
    "type": "object",
    "properties": {"id": {"type": "string"}, "name": {"type": "string"}},
})
def tool_open(params):
    planner = _planner()
    meeting = planner.load_meeting(_find_meeting(params))
    return {"id": meeting.id, "name": meeting.name, "rows": planner.rows()}


@tool("delete", "Delete a saved meeting", {
    "type": "object",
    "properties": {"id": {"type": "string"}, "name": {"type": "string"}},
})
def tool_delete(params):
    meeting = _find_meeting(params)
    return {"ok": _planner().delete_meeting(meeting.id), "deleted": meeting.name}


@tool("status", "Your timezone, the meeting timezone and instant, open meeting", {
    "type": "object", "properties": {},
})
def tool_status(params):
    planner = _planner()
    meeting = planner.repository.get(planner.meeting_id) if planner.meeting_id else None
    return {
        "user_zone": planner.user_zone,
        "anchor_zone": planner.anchor_zone,
        "meeting_time": planner.pivot.astimezone(ZoneInfo(planner.anchor_zone)).isoformat(),
        "meeting_clock": schedule.clock_label(planner.anchor_zone, planner.pivot),
        "locations": len(planner.store),
        "max_locations": MAX_LOCATIONS,
        "meeting": meeting.name if meeting else None,
        "autosave_pending": planner.autosaver.pending,
    }


@tool("complete", "Complete a country or capital name from a prefix", {
    "type": "object",
    "properties": {"prefix": {"type": "string"}},
    "required": ["prefix"],
})
def tool_complete(params):
    return {"completion": tzcatalog.autocomplete(params["prefix"])}


# ---------------------------------------------------------------------------
# MCP protocol handler (JSON-RPC 2.0 over stdio)
# ---------------------------------------------------------------------------

async def handle_request(msg):
    method = msg.get("method", "")
    params = msg.get("params", {})
    msg_id = msg.get("id")

    if method == "initialize":
        return {
            "jsonrpc": "2.0",
            "id": msg_id,
            "result": {
                "protocolVersion": "2024-11-05",
                "capabilities": {"tools": {}},
                "serverInfo": {"name": "taptime", "version": "0.1.0"},
            },
        }

    elif method == "notifications/initialized":
        return None  # no response needed

    elif method == "tools/list":
        tools_list = []
        for name, t in TOOLS.items():
            tools_list.append({
                "name": name,
                "description": t["description"],
                "inputSchema": t["schema"],
            })
        return {
            "jsonrpc": "2.0",
            "id": msg_id,
            "result": {"tools": tools_list},
        }

    elif method == "tools/call":
        tool_name = params.get("name", "")
        tool_args = params.get("arguments", {})

        if tool_name in TOOLS:
            try:
                result = TOOLS[tool_name]["fn"](tool_args)
                if asyncio.iscoroutine(result):
                    result = await result
                if PERSIST:
                    taptime.save_planner(_planner(), STATE, flush=False)
                return {
                    "jsonrpc": "2.0",
                    "id": msg_id,
                    "result": {
                        "content": [{"type": "text", "text": json.dumps(result, indent=2, ensure_ascii=False)}],
                    },
                }
            except Exception as e:
                log.exception("Tool %s failed", tool_name)
                return {
                    "jsonrpc": "2.0",
                    "id": msg_id,
                    "result": {
                        "content": [{"type": "text", "text": f"Error: {e}"}],
                        "isError": True,
                    },
                }
        else:
            return {
                "jsonrpc": "2.0",
                "id": msg_id,
                "error": {"code": -32601, "message": f"Unknown tool: {tool_name}"},
            }

    elif method == "ping":
        return {"jsonrpc": "2.0", "id": msg_id, "result": {}}

    else:
        # Unknown method
        if msg_id is not None:
            return {
                "jsonrpc": "2.0",
                "id": msg_id,
                "error": {"code": -32601, "message": f"Unknown method: {method}"},
            }
        return None  # notification, no response


async def serve():
    """Read JSON-RPC from stdin, write to stdout, on the planner's loop."""
    loop = asyncio.get_running_loop()
    planner = _planner()
    try:
        while True:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            line = line.strip()
            if not line:
                continue
            try:
                msg = json.loads(line)
            except json.JSONDecodeError:
                continue

            response = await handle_request(msg)
            if response is not None:
                sys.stdout.write(json.dumps(response) + "\n")
                sys.stdout.flush()
    finally:
        taptime.save_planner(planner, STATE)


def main():
    global PERSIST
    logging.basicConfig(level=logging.DEBUG, stream=sys.stderr,
                        format="%(asctime)s taptime %(levelname)s %(message)s")
    log.info("taptime MCP server starting")
    PERSIST = True
    asyncio.run(serve())


if __name__ == "__main__":
    main()
