from __future__ import annotations

from typing import Any, Dict, Optional

from flask import Blueprint, jsonify, request

from config import log
from services.calendar_service import (
    check_calendar_access,
    coerce_event,
    create_calendar_event,
    list_calendar_events,
)
from utils.errors import ServiceError
from utils.json_helpers import jerror, jok, jservice_error

calendar_bp = Blueprint("calendar", __name__)

RECONNECT_MESSAGE = "Authentication error: Please reconnect your Google Calendar."


def _google_token(data: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """OAuth token with calendar scopes: `X-Google-Access-Token` header, else body `access_token`."""
    token = (request.headers.get("X-Google-Access-Token") or "").strip()
    if not token and data:
        token = (data.get("access_token") or "").strip()
    return token or None


# =========================
# Calendar Create
# =========================
@calendar_bp.post("/api/calendar/create")
def calendar_create():
    """
    Put an event extracted from a chat reply on the user's primary calendar.
    Body:
      { event: {title|summary, start, end?, description?, timezone?, location?} }
    Header:
      X-Google-Access-Token: <OAuth token with calendar.events>
      X-User-Name?: optional (for description/signature)
    """
    data = request.get_json(force=True, silent=True) or {}
    access_token = _google_token(data)
    if not access_token:
        return jerror(RECONNECT_MESSAGE, 401, "unauthorized")

    try:
        event = coerce_event(data.get("event"))
        created = create_calendar_event(
            access_token,
            event,
            user_name=request.headers.get("X-User-Name") or "",
        )
        return jok(created)
    except ServiceError as e:
        return jservice_error(e)
    except Exception as e:
        log.exception("[Calendar] create failed")
        return jerror(str(e), 500)


# =========================
# Calendar Events (list + daily briefing)
# =========================
@calendar_bp.get("/api/calendar/events")
def calendar_events():
    """
    Query: range=upcoming|today (default upcoming), maxResults? (1..250)
    Header: X-Google-Access-Token
    """
    access_token = _google_token()
    if not access_token:
        return jerror(RECONNECT_MESSAGE, 401, "unauthorized")
    window = (request.args.get("range") or "upcoming").strip().lower()
    try:
        max_results = max(1, min(250, int(request.args.get("maxResults") or 20)))
    except ValueError:
        return jerror("maxResults must be a number", 400)

    try:
        events = list_calendar_events(access_token, window, max_results=max_results)
    except ServiceError as e:
        return jservice_error(e)
    return jok({"range": window, "events": events})


@calendar_bp.post("/api/calendar/check-auth")
def calendar_check_auth():
    data = request.get_json(force=True, silent=True) or {}
    try:
        return jsonify({"authenticated": check_calendar_access(_google_token(data))})
    except ServiceError as e:
        return jservice_error(e)
