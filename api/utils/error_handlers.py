from __future__ import annotations

from flask import Flask

from config import log
from utils.errors import ServiceError
from utils.json_helpers import jerror, jservice_error


def register_error_handlers(app: Flask) -> None:
    """JSON bodies for every error, so the chat client can always read `error.message`."""

    @app.errorhandler(ServiceError)
    def service_error(e: ServiceError):
        log.warning("[%s] %s", e.code, e.message)
        return jservice_error(e)

    @app.errorhandler(404)
    def not_found(_):
        return jerror("Route not found", 404, "not_found")

    @app.errorhandler(405)
    def method_not_allowed(_):
        return jerror("Method not allowed", 405, "method_not_allowed")

    @app.errorhandler(500)
    def internal(_):
        return jerror("Internal server error", 500, "internal_error")
