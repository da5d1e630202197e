from __future__ import annotations

from flask import Blueprint, Response, jsonify, request, stream_with_context

from config import log
from services.chat_service import build_messages, complete_reply, resolve_credential, stream_reply
from utils.errors import ServiceError
from utils.json_helpers import jerror, jservice_error, request_id
from utils.observability import relay_event

chat_bp = Blueprint("chat", __name__)


# =========================
# Chat: /api/chat (+ streaming)
# =========================
@chat_bp.post("/api/chat")
def chat():
    """
    Body:
      {
        sessionId: string,
        messages: [ {role, content}, ... ],
        credential: string,                       # user's OpenAI key
        credentialMeta?: {prefix, suffix, length},
        stream?: bool (default true)
      }
    Streams `data: <content>` lines ending in `data: [DONE]`,
    or returns {content} when stream is false.
    """
    data = request.get_json(force=True, silent=True) or {}
    session_id = (data.get("sessionId") or "").strip()
    want_stream = data.get("stream", True) is not False

    try:
        credential = resolve_credential(data)
        messages = build_messages(data.get("messages"))
    except ServiceError as e:
        return jservice_error(e)

    relay_event(
        "request",
        session_id=session_id,
        request_id=request_id(),
        messages=len(messages),
        stream=want_stream,
    )

    if want_stream:
        resp = Response(
            stream_with_context(stream_reply(credential, messages, session_id=session_id)),
            mimetype="text/event-stream",
        )
        resp.headers["Cache-Control"] = "no-cache"
        resp.headers["X-Accel-Buffering"] = "no"
        return resp

    try:
        return jsonify({"content": complete_reply(credential, messages)})
    except Exception as e:
        log.exception("chat completion failed")
        return jerror(str(e), 500)
