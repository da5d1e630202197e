from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    def __init__(self, message: str, status: int = 400, code: str = "bad_request"):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


# =========================
# Turn-level errors
# =========================
class CredentialMissing(ServiceError):
    def __init__(self, message: str = "OpenAI API key is required."):
        super().__init__(message, 401, "credential_missing")


class CredentialInvalidFormat(ServiceError):
    def __init__(self, message: str = "Invalid API key format"):
        super().__init__(message, 400, "credential_invalid")


class SessionMissing(ServiceError):
    def __init__(self, message: str = "Missing session id"):
        super().__init__(message, 401, "session_missing")


class StreamUnavailable(ServiceError):
    def __init__(self, message: str = "Unable to read response stream"):
        super().__init__(message, 502, "stream_unavailable")


class RequestFailed(ServiceError):
    def __init__(self, status: int, body: Optional[str] = None):
        detail = (body or "").strip()
        message = f"Chat request failed ({status})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, status, "request_failed")
        self.body = detail


class UnexpectedResponseShape(ServiceError):
    def __init__(self, message: str = "Chat response is missing 'content'"):
        super().__init__(message, 502, "unexpected_response")


class ExtractionFailure(ValueError):
    """Raised inside the calendar extractor only; never leaves it."""


# =========================
# Key storage errors
# =========================
class EncryptionConfigError(ServiceError):
    def __init__(self, message: str = "Server encryption configuration error"):
        super().__init__(message, 500, "encryption_config")


class KeyNotFound(ServiceError):
    def __init__(self, message: str = "API key not found for this user"):
        super().__init__(message, 404, "not_found")
