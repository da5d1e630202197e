from __future__ import annotations

from flask import Blueprint, request

from utils.debug_events import clear_events, debug_enabled, list_events
from utils.json_helpers import jerror, jok

debug_bp = Blueprint("debug", __name__)


@debug_bp.before_request
def _console_gate():
    if not debug_enabled():
        return jerror("Debug console disabled", 404, "not_found")
    return None


@debug_bp.get("/debug/events")
def debug_events():
    """
    Query: since? (event id), category? (request|turn|chat|error),
    session_id?, turn_id? to follow one conversation or one turn.
    """
    try:
        since = int(request.args.get("since") or 0)
    except ValueError:
        return jerror("since must be an event id", 400)
    category = (request.args.get("category") or "").strip() or None
    events = list_events(since, category)
    for field in ("session_id", "turn_id"):
        wanted = (request.args.get(field) or "").strip()
        if wanted:
            events = [e for e in events if e.get("data", {}).get(field) == wanted]
    return jok({"events": events})


@debug_bp.post("/debug/clear")
def debug_clear():
    clear_events()
    return jok({"cleared": True})
