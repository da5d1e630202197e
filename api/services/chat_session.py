from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from threading import RLock
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from clients.lumen_client import LumenChatClient
from config import log
from schemas.chat import CalendarEvent, Message
from services.calendar_extractor import extract_calendar_event, to_calendar_event
from services.stream_decoder import TokenStream, open_token_stream
from services.text_formatter import format_chunk, normalize_text
from utils.credentials import is_valid_format
from utils.errors import (
    CredentialInvalidFormat,
    CredentialMissing,
    RequestFailed,
    ServiceError,
    SessionMissing,
)
from utils.observability import turn_event

GREETING = (
    "Hello! I'm Lumen, your AI assistant. How can I help you today? "
    "You can ask me to schedule events on your calendar or ask me general questions."
)
FALLBACK_MISSING_KEY = "Please add your OpenAI API key in the settings to continue."
FALLBACK_INVALID_KEY = "Your OpenAI API key doesn't look right. Please check it in the settings."
FALLBACK_NO_SESSION = "Your login session is incomplete. Please try logging in again."
FALLBACK_GENERIC = "Sorry, I encountered an error. Please try again."
EVENT_DECLINED = "No problem. I've canceled adding this event to your calendar."


class TurnState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


_ACTIVE_STATES = (TurnState.SENDING, TurnState.STREAMING, TurnState.FINALIZING)


@dataclass(frozen=True)
class Notice:
    """Transient, non-blocking notification (a toast in the web app)."""

    title: str
    description: str
    variant: str = "default"


CalendarCreator = Callable[[CalendarEvent], bool]
# Asked before the creator runs; False leaves the calendar untouched.
CalendarConfirm = Callable[[CalendarEvent], bool]


def _fallback_for(exc: BaseException) -> Tuple[str, str]:
    if isinstance(exc, CredentialMissing):
        return FALLBACK_MISSING_KEY, "API Key Required"
    if isinstance(exc, CredentialInvalidFormat):
        return FALLBACK_INVALID_KEY, "Invalid API Key"
    if isinstance(exc, SessionMissing):
        return FALLBACK_NO_SESSION, "Authentication Error"
    if isinstance(exc, RequestFailed) and exc.status == 401:
        return FALLBACK_INVALID_KEY, "Invalid API Key"
    return FALLBACK_GENERIC, "Error"


class ChatTurn:
    """
    Handle for one user turn. Every call is checked against the session's
    current turn, so a turn that was abandoned can never touch newer state.
    """

    def __init__(self, session: "ChatSession", turn_id: str, history: List[Dict[str, str]]) -> None:
        self.session = session
        self.turn_id = turn_id
        self.history = history
        self._stream: Optional[TokenStream] = None

    @property
    def active(self) -> bool:
        return self.session._is_current(self)

    def run(self) -> Optional[Message]:
        """Send, stream and finalize. Returns the appended message, or None if abandoned."""
        session = self.session
        try:
            resp = session.client.open_stream(session.session_id, self.history, session.credential or "")
            self._stream = open_token_stream(resp)
            if not self.active:
                return None
            session._set_state(self, TurnState.STREAMING)
            for token in self._stream:
                if not self.feed(token, self._stream.last_raw):
                    break
            if not self.active:
                return None
            return self.finish()
        except Exception as e:
            return self.fail(e)
        finally:
            self.close()

    def feed(self, token: str, raw: Optional[str] = None) -> bool:
        """`raw` is the untrimmed frame payload; it defaults to the token itself."""
        return self.session._apply_token(self, token, token if raw is None else raw)

    def finish(self) -> Optional[Message]:
        return self.session._finalize(self)

    def fail(self, exc: BaseException) -> Optional[Message]:
        return self.session._fail(self, exc)

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()


class ChatSession:
    """
    One conversation. Drives a turn from user text to a finalized assistant
    message: request, token stream, incremental formatting, final cleanup and
    calendar extraction. Exactly one turn runs at a time.

    Two buffers live for the length of a turn: the formatted text that is
    published to `on_update`, and the raw payloads joined as received. The
    calendar extractor reads the raw one, because word spacing would split
    timestamps like "202" + "4".
    """

    def __init__(
        self,
        session_id: Optional[str],
        credential: Optional[str],
        client: Optional[LumenChatClient] = None,
        *,
        history: Optional[Iterable[Message]] = None,
        calendar: Optional[CalendarCreator] = None,
        confirm: Optional[CalendarConfirm] = None,
        on_update: Optional[Callable[[str], None]] = None,
        on_notice: Optional[Callable[[Notice], None]] = None,
    ) -> None:
        self.session_id = session_id or ""
        self.credential = credential
        self.client = client or LumenChatClient()
        self.calendar = calendar
        self.confirm = confirm
        self.on_update = on_update
        self.on_notice = on_notice

        self._messages: List[Message] = list(history or [])
        if not self._messages:
            self._messages.append(Message(id="system-1", role="assistant", content=GREETING))
        self._lock = RLock()
        self._current: Optional[ChatTurn] = None
        self._accumulated = ""
        self._raw = ""
        self._rejected: Optional[Message] = None
        self.state = TurnState.IDLE

    # ---------- read-only views ----------
    @property
    def messages(self) -> Tuple[Message, ...]:
        with self._lock:
            return tuple(self._messages)

    @property
    def accumulated_text(self) -> str:
        return self._accumulated

    @property
    def busy(self) -> bool:
        return self._current is not None or self.state in _ACTIVE_STATES

    # ---------- public API ----------
    def submit(self, text: str) -> Optional[Message]:
        """
        Run one full turn. Returns the assistant (or fallback) message that was
        appended, or None when the submission was ignored.
        """
        self._rejected = None
        turn = self.start_turn(text)
        if turn is None:
            return self._rejected
        return turn.run()

    def start_turn(self, text: str) -> Optional[ChatTurn]:
        """Check preconditions, record the user message and hand back a turn handle."""
        text = (text or "").strip()
        if not text:
            return None
        with self._lock:
            if self.busy:
                log.info("[ChatSession] submission ignored; turn already in flight session=%s", self.session_id)
                return None
            self._append(Message(role="user", content=text))
            try:
                self._check_preconditions()
            except ServiceError as e:
                self._rejected = self._reject(e)
                return None
            turn = ChatTurn(self, uuid.uuid4().hex, [m.to_wire() for m in self._messages])
            self._current = turn
            self._accumulated = ""
            self._raw = ""
            self._set_state(turn, TurnState.SENDING)
        return turn

    def abandon(self) -> None:
        """Drop the in-flight turn; whatever it resolves to later is discarded."""
        with self._lock:
            turn = self._current
            if turn is None:
                return
            self._current = None
            self._accumulated = ""
            self._raw = ""
            self.state = TurnState.IDLE
        turn.close()
        turn_event("abandoned", session_id=self.session_id, turn_id=turn.turn_id)
        log.info("[ChatSession] turn abandoned session=%s turn=%s", self.session_id, turn.turn_id)

    # ---------- turn internals ----------
    def _check_preconditions(self) -> None:
        if not self.credential:
            raise CredentialMissing()
        if not is_valid_format(self.credential):
            raise CredentialInvalidFormat()
        if not self.session_id:
            raise SessionMissing()

    def _is_current(self, turn: ChatTurn) -> bool:
        return self._current is turn

    def _append(self, message: Message) -> Message:
        self._messages.append(message)
        return message

    def _notify(self, notice: Notice) -> None:
        if self.on_notice:
            self.on_notice(notice)

    def _set_state(self, turn: ChatTurn, state: TurnState) -> None:
        with self._lock:
            if not self._is_current(turn):
                return
            previous, self.state = self.state, state
        turn_event(
            "set_state",
            session_id=self.session_id,
            turn_id=turn.turn_id,
            previous=previous.value,
            state=state.value,
        )

    def _apply_token(self, turn: ChatTurn, token: str, raw: str) -> bool:
        with self._lock:
            if not self._is_current(turn):
                log.debug("[ChatSession] late token dropped turn=%s", turn.turn_id)
                return False
            if self.state == TurnState.SENDING:
                self._set_state(turn, TurnState.STREAMING)
            updated = format_chunk(self._accumulated, token)
            # re-check: the turn may have been replaced while formatting
            if not self._is_current(turn):
                return False
            self._raw += raw
            changed = updated != self._accumulated
            self._accumulated = updated
        if changed and self.on_update:
            self.on_update(updated)
        # on_update may have abandoned the turn
        return self._is_current(turn)

    def _finalize(self, turn: ChatTurn) -> Optional[Message]:
        with self._lock:
            if not self._is_current(turn):
                return None
            self._set_state(turn, TurnState.FINALIZING)
            accumulated, raw = self._accumulated, self._raw
        try:
            content = normalize_text(accumulated)
            event = to_calendar_event(extract_calendar_event(raw))
            if event is not None:
                event = self._deliver_event(event)
        except Exception as e:
            return self._fail(turn, e)

        with self._lock:
            if not self._is_current(turn):
                return None
            message = self._append(Message(role="assistant", content=content, calendar_event=event))
            self._end_turn(turn, TurnState.COMPLETED)
        log.info(
            "[ChatSession] turn completed session=%s turn=%s chars=%d calendar=%s",
            self.session_id,
            turn.turn_id,
            len(content),
            bool(event),
        )
        return message

    def _deliver_event(self, event: CalendarEvent) -> Optional[CalendarEvent]:
        if self.calendar is None:
            return event
        if self.confirm is not None and not self.confirm(event):
            log.info("[ChatSession] calendar event declined session=%s title=%s", self.session_id, event.title)
            self._notify(Notice("Event Not Added", EVENT_DECLINED))
            return None
        if self.calendar(event):
            self._notify(Notice("Event Created", f'Added "{event.title}" to your calendar.'))
            return event
        self._notify(
            Notice(
                "Failed to Create Event",
                "There may be an authentication issue. Please reconnect Google Calendar.",
                "destructive",
            )
        )
        return None

    def _fail(self, turn: ChatTurn, exc: BaseException) -> Optional[Message]:
        content, title = _fallback_for(exc)
        with self._lock:
            if not self._is_current(turn):
                log.info("[ChatSession] late failure ignored turn=%s error=%s", turn.turn_id, exc)
                return None
            message = self._append(Message(role="assistant", content=content))
            self._end_turn(turn, TurnState.FAILED)
        log.warning("[ChatSession] turn failed session=%s turn=%s error=%s", self.session_id, turn.turn_id, exc)
        self._notify(Notice(title, str(exc) or content, "destructive"))
        return message

    def _reject(self, exc: ServiceError) -> Message:
        content, title = _fallback_for(exc)
        log.info("[ChatSession] turn rejected session=%s code=%s", self.session_id, exc.code)
        turn_event("rejected", session_id=self.session_id, code=exc.code)
        self._notify(Notice(title, exc.message, "destructive"))
        return self._append(Message(role="assistant", content=content))

    def _end_turn(self, turn: ChatTurn, state: TurnState) -> None:
        with self._lock:
            self._set_state(turn, state)
            if self._current is turn:
                self._current = None
            self._accumulated = ""
            self._raw = ""
