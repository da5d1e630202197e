from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from clients.google_client import _google_get, _google_post, _iso, _normalize_event_datetime, _parse_event_datetime
from config import log
from schemas.chat import CalendarEvent
from services.calendar_extractor import to_calendar_event
from utils.errors import ServiceError

DEFAULT_DURATION_MINUTES = 60
UPCOMING_DAYS = 30
EVENT_WINDOWS = ("upcoming", "today")


# =========================
# Calendar helpers
# =========================
def coerce_event(raw: Any) -> CalendarEvent:
    """Accept a canonical event dict or any extractor candidate shape."""
    if isinstance(raw, CalendarEvent):
        return raw
    if not isinstance(raw, dict):
        raise ServiceError("Missing 'event' in request body.", 400)
    try:
        return CalendarEvent(**raw)
    except (TypeError, ValidationError):
        event = to_calendar_event(raw)
    if event is None:
        raise ServiceError("Event needs at least a title and a start time.", 400)
    return event


def _default_end(start: str, minutes: int = DEFAULT_DURATION_MINUTES) -> str:
    try:
        return _iso(_parse_event_datetime(start) + dt.timedelta(minutes=minutes))
    except ValueError:
        raise ServiceError(f"Unrecognized start time: {start}", 400)


def build_google_event(event: CalendarEvent, user_name: str = "") -> Dict[str, Any]:
    try:
        start = _normalize_event_datetime(event.start)
    except ValueError:
        raise ServiceError("Event is missing a start time.", 400)
    end = _normalize_event_datetime(event.end) if event.end else _default_end(start)

    start_obj: Dict[str, Any] = {"dateTime": start}
    end_obj: Dict[str, Any] = {"dateTime": end}
    if event.timezone:
        start_obj["timeZone"] = event.timezone
        end_obj["timeZone"] = event.timezone

    g_event: Dict[str, Any] = {
        "summary": event.title or "(No title)",
        "start": start_obj,
        "end": end_obj,
    }
    if event.location:
        g_event["location"] = event.location
    desc = event.description or "Added via Lumen"
    if user_name:
        desc = f"{desc}\n\n— {user_name}".strip()
    g_event["description"] = desc
    return g_event


def create_calendar_event(access_token: str, event: CalendarEvent, user_name: str = "") -> Dict[str, Any]:
    if not access_token:
        raise ServiceError("Missing Google access token.", 401, "unauthorized")
    created = _google_post(access_token, "/calendars/primary/events", build_google_event(event, user_name))
    log.info("[Calendar] created event id=%s title=%s", created.get("id"), event.title)
    return {
        "id": created.get("id"),
        "htmlLink": created.get("htmlLink"),
        "event": event.model_dump(),
    }


def _window_bounds(window: str, now: dt.datetime) -> Tuple[str, str]:
    if window == "today":
        day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return _iso(day), _iso(day + dt.timedelta(days=1))
    if window == "upcoming":
        return _iso(now), _iso(now + dt.timedelta(days=UPCOMING_DAYS))
    raise ServiceError(f"Unknown range '{window}'; expected one of {', '.join(EVENT_WINDOWS)}", 400)


def list_calendar_events(
    access_token: str,
    window: str = "upcoming",
    max_results: int = 20,
    now: Optional[dt.datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Events on the primary calendar, oldest first, as canonical event dicts
    plus Google's `id` and `htmlLink`. "today" is the current UTC day;
    "upcoming" runs from now for UPCOMING_DAYS.
    """
    if not access_token:
        raise ServiceError("Missing Google access token.", 401, "unauthorized")
    time_min, time_max = _window_bounds(window, now or dt.datetime.now(dt.timezone.utc))

    items: List[Dict[str, Any]] = []
    page_token = None
    while True:
        params: Dict[str, Any] = {
            "timeMin": time_min,
            "timeMax": time_max,
            "singleEvents": True,
            "orderBy": "startTime",
            "maxResults": min(250, max_results),
        }
        if page_token:
            params["pageToken"] = page_token
        page = _google_get(access_token, "/calendars/primary/events", params)
        items.extend(page.get("items", []))
        page_token = page.get("nextPageToken")
        if not page_token or len(items) >= max_results:
            break

    events: List[Dict[str, Any]] = []
    for item in items[:max_results]:
        if item.get("status") == "cancelled":
            continue
        event = to_calendar_event(item)
        if event is None:
            continue
        events.append({"id": item.get("id"), "htmlLink": item.get("htmlLink"), **event.model_dump()})
    log.info("[Calendar] listed %d %s events", len(events), window)
    return events


def check_calendar_access(access_token: Optional[str]) -> bool:
    """True when the token can still read the user's calendar list."""
    if not access_token:
        return False
    try:
        _google_get(access_token, "/users/me/calendarList", {"maxResults": 1})
        return True
    except ServiceError as e:
        if e.status == 401:
            return False
        raise
