from __future__ import annotations

import uuid
from typing import Any, Tuple

from flask import Response, g, jsonify, request

from utils.errors import ServiceError

JsonReply = Tuple[Response, int]


def request_id() -> str:
    """Id set by the app middleware, else the caller's header, else a fresh one."""
    return getattr(g, "request_id", None) or request.headers.get("X-Request-Id") or str(uuid.uuid4())


def jok(data: Any, status: int = 200) -> JsonReply:
    return jsonify({"ok": True, "data": data, "request_id": request_id()}), status


def jerror(message: str, status: int = 400, code: str = "bad_request") -> JsonReply:
    return jsonify({"ok": False, "error": {"code": code, "message": message}, "request_id": request_id()}), status


def jservice_error(e: ServiceError) -> JsonReply:
    return jerror(e.message, e.status, e.code)
