from __future__ import annotations

from flask import Blueprint, request

from storage.chat_history_store import clear_history, load_history, load_settings, save_settings
from utils.json_helpers import jerror, jok

history_bp = Blueprint("history", __name__)


def _get_user_id() -> str:
    uid = request.args.get("googleId") or request.headers.get("X-User-Id")
    if uid:
        return uid.strip()
    data = request.get_json(force=True, silent=True) or {}
    return (data.get("googleId") or "").strip()


@history_bp.get("/api/history")
def history_get():
    user_id = _get_user_id()
    if not user_id:
        return jerror("Missing googleId", 400)
    return jok({"messages": [m.model_dump() for m in load_history(user_id)]})


@history_bp.delete("/api/history")
def history_clear():
    user_id = _get_user_id()
    if not user_id:
        return jerror("Missing googleId", 400)
    clear_history(user_id)
    return jok({"cleared": True})


@history_bp.get("/api/settings")
def settings_get():
    user_id = _get_user_id()
    if not user_id:
        return jerror("Missing googleId", 400)
    return jok(load_settings(user_id))


@history_bp.post("/api/settings")
def settings_save():
    data = request.get_json(force=True, silent=True) or {}
    user_id = _get_user_id()
    if not user_id:
        return jerror("Missing googleId", 400)
    return jok(save_settings(user_id, data.get("settings") or {}))
