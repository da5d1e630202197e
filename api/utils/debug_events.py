from __future__ import annotations

import itertools
import time
from collections import deque
from threading import Lock
from typing import Any, Deque, Dict, List, Optional

from config import DEBUG_CONSOLE_ENABLED, DEBUG_EVENTS_MAX


class EventRing:
    """Most recent debug events, newest last, with ids that keep increasing across clears."""

    def __init__(self, maxlen: int) -> None:
        self._events: Deque[Dict[str, Any]] = deque(maxlen=maxlen)
        self._ids = itertools.count(1)
        self._lock = Lock()

    def add(self, **event: Any) -> Dict[str, Any]:
        with self._lock:
            event = {"id": next(self._ids), "ts": time.time(), **event}
            self._events.append(event)
        return event

    def since(self, since_id: int = 0, category: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            events = [e for e in self._events if e["id"] > since_id]
        return [e for e in events if category is None or e["category"] == category]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


_RING = EventRing(DEBUG_EVENTS_MAX)


def debug_enabled() -> bool:
    return bool(DEBUG_CONSOLE_ENABLED)


def record_event(
    category: str,
    message: str,
    *,
    data: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
    level: str = "info",
) -> Dict[str, Any]:
    """Add an event when the console is on; returns {} otherwise."""
    if not debug_enabled():
        return {}
    return _RING.add(
        level=level,
        category=category,
        message=message,
        request_id=request_id or "",
        data=dict(data or {}),
    )


def list_events(since_id: int = 0, category: Optional[str] = None) -> List[Dict[str, Any]]:
    return _RING.since(since_id, category)


def clear_events() -> None:
    _RING.clear()
