from __future__ import annotations

from typing import Any, Dict, Optional

from config import log
from utils.debug_events import record_event


def _emit(category: str, message: str, scope: Dict[str, Any], fields: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
    data = {k: v for k, v in scope.items() if v}
    data.update(fields)
    log.debug("[%s] %s %s", category.title(), message, " ".join(f"{k}={v}" for k, v in data.items()))
    return record_event(category, message, data=data, **kwargs)


def turn_event(
    message: str,
    *,
    session_id: str,
    turn_id: Optional[str] = None,
    level: str = "info",
    **fields: Any,
) -> Dict[str, Any]:
    """A step in a chat turn (state change, rejection, abandonment)."""
    return _emit("turn", message, {"session_id": session_id, "turn_id": turn_id}, fields, level=level)


def relay_event(
    message: str,
    *,
    session_id: str,
    request_id: Optional[str] = None,
    **fields: Any,
) -> Dict[str, Any]:
    """A request handled by the /api/chat relay."""
    return _emit("chat", message, {"session_id": session_id}, fields, request_id=request_id)
