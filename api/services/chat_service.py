from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional

from clients.openai_client import complete_text, make_client, stream_deltas, to_openai_messages
from config import log
from services.key_service import fetch_openai_key
from services.stream_decoder import DATA_PREFIX, DONE_SENTINEL
from utils.credentials import is_valid_format, mask_key
from utils.errors import (
    CredentialInvalidFormat,
    CredentialMissing,
    EncryptionConfigError,
    KeyNotFound,
    ServiceError,
)


# =========================
# Chat relay (backend side of /api/chat)
# =========================
def resolve_credential(data: Dict[str, Any]) -> str:
    """
    Credential from the request body (`credential`, or the older `apiKey`),
    else the user's stored key looked up by session id.
    """
    credential = (data.get("credential") or data.get("apiKey") or "").strip()
    session_id = (data.get("sessionId") or data.get("googleId") or "").strip()
    if not credential and session_id:
        try:
            credential = fetch_openai_key(session_id)
        except (KeyNotFound, EncryptionConfigError) as e:
            log.info("[ChatRelay] no stored key for session=%s: %s", session_id, e.message)
            credential = ""
    if not credential:
        raise CredentialMissing()
    if not is_valid_format(credential):
        meta = data.get("credentialMeta") or {}
        log.warning(
            "[ChatRelay] rejected credential %s (client saw prefix=%s length=%s)",
            mask_key(credential),
            meta.get("prefix"),
            meta.get("length"),
        )
        raise CredentialInvalidFormat()
    return credential


def build_messages(raw_messages: Any) -> List[Dict[str, str]]:
    messages = to_openai_messages(raw_messages)
    if len(messages) < 2:
        raise ServiceError("Missing 'messages' in request body.", 400)
    return messages


def sse_frames(text: str) -> Iterator[str]:
    # One frame per line: a raw newline would end the frame early.
    for part in text.split("\n"):
        yield f"{DATA_PREFIX} {part}\n\n"


def stream_reply(credential: str, messages: List[Dict[str, str]], session_id: Optional[str] = None) -> Iterator[str]:
    """Relay OpenAI deltas as `data:` frames, closed by `data: [DONE]`."""
    client = make_client(credential)
    sent = 0
    try:
        for delta in stream_deltas(client, messages):
            sent += 1
            yield from sse_frames(delta)
    except Exception as e:
        # Headers are already out; report in-band without emitting content.
        log.exception("[ChatRelay] upstream stream failed session=%s after=%d", session_id, sent)
        yield "event: error\n"
        yield f": {str(e).splitlines()[0] if str(e) else type(e).__name__}\n\n"
        return
    log.info("[ChatRelay] stream done session=%s deltas=%d", session_id, sent)
    yield f"{DATA_PREFIX} {DONE_SENTINEL}\n\n"


def complete_reply(credential: str, messages: List[Dict[str, str]]) -> str:
    return complete_text(make_client(credential), messages)
