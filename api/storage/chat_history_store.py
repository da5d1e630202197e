from __future__ import annotations

import os
import re
import time
from typing import Any, Dict, Iterable, List

from pydantic import ValidationError

from config import DATA_DIR, log
from schemas.chat import Message
from storage.local_store import LocalJsonFile

HISTORY_DIR = os.environ.get("LUMEN_HISTORY_DIR", os.path.join(DATA_DIR, "history"))

DEFAULT_SETTINGS: Dict[str, Any] = {
    "voiceActivation": False,
    "voiceId": "en-US-Standard-B",
    "speechRate": 1,
    "googleCalendarConnected": False,
    "useWhisper": False,
}


def _doc(user_id: str, kind: str) -> LocalJsonFile:
    safe = re.sub(r"[^a-zA-Z0-9._-]", "_", user_id or "dev-anon")
    return LocalJsonFile(os.path.join(HISTORY_DIR, f"{safe}.{kind}.json"))


def _known_settings(values: Any) -> Dict[str, Any]:
    if not isinstance(values, dict):
        return {}
    return {k: v for k, v in values.items() if k in DEFAULT_SETTINGS}


# =========================
# Chat history
# =========================
def load_history(user_id: str) -> List[Message]:
    raw = _doc(user_id, "history").read()
    items = raw.get("messages") if isinstance(raw, dict) else None
    out: List[Message] = []
    for item in items or []:
        try:
            out.append(Message(**item))
        except (TypeError, ValidationError):
            log.warning("[History] skipping unreadable message for user=%s", user_id)
    return out


def save_history(user_id: str, messages: Iterable[Message]) -> None:
    _doc(user_id, "history").write(
        {
            "messages": [m.model_dump() for m in messages],
            "lastUpdated": int(time.time() * 1000),
        }
    )


def clear_history(user_id: str) -> None:
    save_history(user_id, [])


# =========================
# Settings (whitelisted to DEFAULT_SETTINGS keys)
# =========================
def load_settings(user_id: str) -> Dict[str, Any]:
    return {**DEFAULT_SETTINGS, **_known_settings(_doc(user_id, "settings").read())}


def save_settings(user_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    def _merge(stored: Dict[str, Any]) -> Dict[str, Any]:
        merged = {**DEFAULT_SETTINGS, **_known_settings(stored), **_known_settings(updates)}
        stored.clear()
        stored.update(merged)
        return merged

    return _doc(user_id, "settings").update(_merge)
