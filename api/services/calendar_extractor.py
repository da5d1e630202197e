from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

from pydantic import ValidationError

from config import log
from schemas.chat import CalendarEvent
from utils.errors import ExtractionFailure

CALENDAR_MARKERS = ('"type":"calendar"', '"type": "calendar"')
AFFIRMATIVE_WORDS = ("yes", "confirm", "sure")
_FIRST_OBJECT = re.compile(r"\{[\s\S]*?\}")


# =========================
# Calendar intent extraction
# =========================
def has_calendar_marker(text: str) -> bool:
    return any(marker in text for marker in CALENDAR_MARKERS)


def _parse_candidate(text: str) -> Dict[str, Any]:
    match = _FIRST_OBJECT.search(text)
    if not match:
        raise ExtractionFailure("no closed object yet")
    try:
        obj = json.loads(match.group(0))
    except ValueError as e:
        raise ExtractionFailure(str(e)) from e
    if not isinstance(obj, dict) or obj.get("type") != "calendar":
        raise ExtractionFailure("object is not a calendar event")
    return obj


def extract_calendar_event(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Return the calendar event object embedded in `text`, or None.

    Safe to call on partial streaming text: a truncated or malformed object
    is just "not yet", never an error.
    """
    if not text or not has_calendar_marker(text):
        return None
    try:
        return _parse_candidate(text)
    except ExtractionFailure as e:
        log.debug("[CalendarExtractor] no event: %s", e)
        return None


def _when(value: Any) -> str:
    # Either "2024-01-01T12:00:00Z" or {"dateTime": ..., "timeZone": ...} / {"date": ...}
    if isinstance(value, dict):
        return str(value.get("dateTime") or value.get("date") or "")
    return str(value or "")


def _zone(candidate: Dict[str, Any]) -> str:
    if candidate.get("timezone"):
        return str(candidate["timezone"])
    start = candidate.get("start")
    if isinstance(start, dict) and start.get("timeZone"):
        return str(start["timeZone"])
    return ""


def is_affirmative(reply: Optional[str]) -> bool:
    """Reading of a yes/no answer to "add this event?"."""
    words = re.findall(r"[a-z]+", (reply or "").lower())
    return any(w in AFFIRMATIVE_WORDS for w in words)


def to_calendar_event(candidate: Optional[Dict[str, Any]]) -> Optional[CalendarEvent]:
    """Adapt any accepted candidate shape (title/summary, flat/nested times) to CalendarEvent."""
    if not candidate:
        return None
    title = candidate.get("title") or candidate.get("summary") or ""
    start = _when(candidate.get("start"))
    if not start:
        log.info("[CalendarExtractor] dropping event without a start time")
        return None
    try:
        return CalendarEvent(
            title=str(title).strip() or "(No title)",
            start=start,
            end=_when(candidate.get("end")),
            description=str(candidate.get("description") or ""),
            timezone=_zone(candidate),
            location=str(candidate.get("location") or ""),
        )
    except ValidationError:
        log.warning("[CalendarExtractor] candidate failed validation", exc_info=True)
        return None
