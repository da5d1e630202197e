from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from config import HTTP_TIMEOUT_SECS, LUMEN_API_BASE, log
from schemas.chat import CalendarEvent
from utils.credentials import credential_meta
from utils.errors import RequestFailed, StreamUnavailable, UnexpectedResponseShape


# =========================
# Lumen chat API client
# =========================
class LumenChatClient:
    """HTTP side of a chat turn: POST /api/chat and POST /api/calendar/create."""

    def __init__(
        self,
        base_url: str = LUMEN_API_BASE,
        timeout: float = HTTP_TIMEOUT_SECS,
        http: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()

    def _chat_body(
        self,
        session_id: str,
        messages: List[Dict[str, str]],
        credential: str,
        stream: bool,
    ) -> Dict[str, Any]:
        return {
            "sessionId": session_id,
            "messages": messages,
            "credential": credential,
            "credentialMeta": credential_meta(credential),
            "stream": stream,
        }

    @staticmethod
    def _raise_for_status(resp: requests.Response) -> None:
        if resp.status_code < 400:
            return
        try:
            body = resp.text
        except Exception:
            body = ""
        finally:
            resp.close()
        raise RequestFailed(resp.status_code, body)

    def open_stream(
        self,
        session_id: str,
        messages: List[Dict[str, str]],
        credential: str,
    ) -> requests.Response:
        """Issue the streaming request; the caller owns (and must close) the response."""
        resp = self.http.post(
            f"{self.base_url}/api/chat",
            json=self._chat_body(session_id, messages, credential, stream=True),
            headers={"Accept": "text/event-stream"},
            stream=True,
            timeout=self.timeout,
        )
        self._raise_for_status(resp)
        if resp.raw is None:
            resp.close()
            raise StreamUnavailable()
        log.info("[LumenClient] stream open session=%s status=%s", session_id, resp.status_code)
        return resp

    def complete(
        self,
        session_id: str,
        messages: List[Dict[str, str]],
        credential: str,
    ) -> str:
        """
        Whole reply as `{content}` (`stream: false`). ChatSession always streams;
        this is for scripts and callers that cannot read a streamed body.
        """
        resp = self.http.post(
            f"{self.base_url}/api/chat",
            json=self._chat_body(session_id, messages, credential, stream=False),
            timeout=self.timeout,
        )
        self._raise_for_status(resp)
        try:
            data = resp.json()
        except ValueError as e:
            raise UnexpectedResponseShape("Chat response is not JSON") from e
        content = data.get("content") if isinstance(data, dict) else None
        if not isinstance(content, str):
            raise UnexpectedResponseShape()
        return content

    def create_calendar_event(self, event: CalendarEvent, access_token: str) -> bool:
        """Ask the backend to put `event` on the user's primary calendar."""
        try:
            resp = self.http.post(
                f"{self.base_url}/api/calendar/create",
                json={"event": event.model_dump()},
                headers={"X-Google-Access-Token": access_token},
                timeout=self.timeout,
            )
        except requests.RequestException:
            log.exception("[LumenClient] calendar create request failed")
            return False
        if resp.status_code == 401:
            log.warning("[LumenClient] calendar create unauthorized; Google needs reconnecting")
            return False
        if resp.status_code >= 400:
            log.warning("[LumenClient] calendar create failed: %s %s", resp.status_code, resp.text)
            return False
        return True
