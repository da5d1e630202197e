from __future__ import annotations

import time
import uuid

from flask import Flask, g, got_request_exception, request
from flask_cors import CORS

from config import DEBUG, FLASK_SECRET, PORT, log
from utils.debug_events import record_event
from utils.error_handlers import register_error_handlers


def _track_requests(app: Flask) -> None:
    """Request ids on every response, plus request and error events for the debug console."""

    @app.before_request
    def _start():
        g.request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        g.started = time.monotonic()
        record_event(
            "request",
            f"{request.method} {request.path} start",
            data={"method": request.method, "path": request.path},
            request_id=g.request_id,
        )

    @app.after_request
    def _finish(response):
        rid = getattr(g, "request_id", "")
        elapsed_ms = int((time.monotonic() - g.started) * 1000) if hasattr(g, "started") else None
        response.headers["X-Request-Id"] = rid
        # For /api/chat streams this is time to first byte, not the whole reply.
        log.debug("[Request] %s %s -> %s in %sms rid=%s", request.method, request.path, response.status_code, elapsed_ms, rid)
        record_event(
            "request",
            f"{request.method} {request.path} end",
            data={"status": response.status_code, "duration_ms": elapsed_ms},
            request_id=rid,
        )
        return response

    def _on_exception(sender, exception, **extra):
        record_event(
            "error",
            type(exception).__name__,
            data={"error": str(exception), "path": request.path},
            request_id=getattr(g, "request_id", None),
            level="error",
        )

    got_request_exception.connect(_on_exception, app)


def create_app() -> Flask:
    app = Flask(__name__)
    app.secret_key = FLASK_SECRET
    # The web client reads X-Request-Id to quote it in bug reports.
    CORS(app, supports_credentials=True, expose_headers=["X-Request-Id"])
    _track_requests(app)

    from routes.calendar import calendar_bp
    from routes.chat import chat_bp
    from routes.debug import debug_bp
    from routes.history import history_bp
    from routes.keys import keys_bp
    from routes.meta import meta_bp

    for bp in (chat_bp, keys_bp, calendar_bp, history_bp, meta_bp, debug_bp):
        app.register_blueprint(bp)

    register_error_handlers(app)
    return app


app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=PORT, debug=DEBUG)
