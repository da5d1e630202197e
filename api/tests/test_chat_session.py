import threading
import time

import pytest

import services.chat_session as chat_session
from conftest import FakeBody
from services.calendar_service import build_google_event
from services.chat_session import (
    EVENT_DECLINED,
    FALLBACK_GENERIC,
    FALLBACK_INVALID_KEY,
    FALLBACK_MISSING_KEY,
    FALLBACK_NO_SESSION,
    GREETING,
    ChatSession,
    TurnState,
)
from utils.errors import RequestFailed

LUNCH_JSON = (
    b'data: {"type":"calendar","title":"Lunch","start":"2024-01-01T12:00:00Z",'
    b'"end":"2024-01-01T13:00:00Z"}\n'
)


class _FakeClient:
    def __init__(self, body=None, error=None):
        self.body = body or FakeBody([b"data: Hi\n", b"data: [DONE]\n"])
        self.error = error
        self.calls = []

    def open_stream(self, session_id, messages, credential):
        self.calls.append({"session_id": session_id, "messages": messages, "credential": credential})
        if self.error is not None:
            raise self.error
        return self.body


def _session(client, credential, session_id="google-123", **kwargs):
    return ChatSession(session_id, credential, client, **kwargs)


def test_new_session_starts_with_greeting(valid_key):
    session = _session(_FakeClient(), valid_key)

    assert [m.content for m in session.messages] == [GREETING]
    assert session.state == TurnState.IDLE


def test_fixture_tokens_produce_exact_message(valid_key):
    updates = []
    session = _session(_FakeClient(), valid_key, on_update=updates.append)

    turn = session.start_turn("hi")
    for token in ("Hello.", " World", "!"):
        assert turn.feed(token) is True
    message = turn.finish()

    assert message.content == "Hello. World!"
    assert updates == ["Hello.", "Hello. World", "Hello. World!"]
    assert session.accumulated_text == ""
    assert session.state == TurnState.COMPLETED


def test_full_turn_streams_and_extracts_calendar_event(valid_key):
    body = FakeBody([b"data: Sure", b"! I'll add it.\n", LUNCH_JSON, b"data: [DONE]\n"])
    client = _FakeClient(body)
    updates = []
    session = _session(client, valid_key, on_update=updates.append)

    message = session.submit("  Add lunch tomorrow  ")

    assert message.role == "assistant"
    assert message.content.startswith("Sure! I'll add it.")
    assert message.calendar_event is not None
    assert message.calendar_event.title == "Lunch"
    assert body.closed == 1, "stream reader must be released"
    assert all(b.startswith(a) for a, b in zip(updates, updates[1:])), "published text must only grow"

    call = client.calls[0]
    assert call["credential"] == valid_key
    assert call["session_id"] == "google-123"
    assert call["messages"][-1] == {"role": "user", "content": "Add lunch tomorrow"}
    assert all(set(m) == {"role", "content"} for m in call["messages"])


def test_calendar_collaborator_success_and_failure(valid_key):
    body = FakeBody([LUNCH_JSON])
    notices = []
    created = []

    def _create(event):
        created.append(event)
        return True

    session = _session(_FakeClient(body), valid_key, calendar=_create, on_notice=notices.append)
    message = session.submit("lunch please")

    assert created and created[0].title == "Lunch"
    assert message.calendar_event.title == "Lunch"
    assert notices[-1].title == "Event Created"

    session = _session(_FakeClient(FakeBody([LUNCH_JSON])), valid_key, calendar=lambda e: False, on_notice=notices.append)
    message = session.submit("lunch please")

    assert message.calendar_event is None
    assert notices[-1].variant == "destructive"


def test_invalid_credential_never_hits_network():
    client = _FakeClient()
    notices = []
    session = _session(client, "abc", on_notice=notices.append)

    message = session.submit("hello")

    assert client.calls == [], "no request may be issued for a malformed key"
    assert message.content == FALLBACK_INVALID_KEY
    assert session.messages[-2].content == "hello"
    assert notices and notices[0].variant == "destructive"
    assert session.busy is False


@pytest.mark.parametrize(
    "credential,session_id,expected",
    [
        (None, "google-123", FALLBACK_MISSING_KEY),
        ("", "google-123", FALLBACK_MISSING_KEY),
        ("sk-short", "google-123", FALLBACK_INVALID_KEY),
        ("sk-" + "a" * 45, "", FALLBACK_NO_SESSION),
    ],
)
def test_precondition_failures_have_distinct_messages(credential, session_id, expected):
    client = _FakeClient()
    session = _session(client, credential, session_id=session_id)

    assert session.submit("hello").content == expected
    assert client.calls == []


def test_blank_input_is_ignored(valid_key):
    session = _session(_FakeClient(), valid_key)

    assert session.submit("   ") is None
    assert len(session.messages) == 1


def test_submission_while_busy_is_rejected(valid_key):
    client = _FakeClient()
    session = _session(client, valid_key)
    session.start_turn("first")
    count = len(session.messages)

    assert session.submit("second") is None
    assert len(session.messages) == count
    assert client.calls == []
    assert session.state == TurnState.SENDING


def test_next_turn_allowed_after_completion(valid_key):
    client = _FakeClient(FakeBody([b"data: One\n"]))
    session = _session(client, valid_key)
    session.submit("first")

    client.body = FakeBody([b"data: Two\n"])
    message = session.submit("second")

    assert message.content == "Two"
    assert len(client.calls) == 2
    assert client.calls[1]["messages"][-2] == {"role": "assistant", "content": "One"}


def test_request_failure_becomes_fallback_message(valid_key):
    notices = []
    session = _session(_FakeClient(error=RequestFailed(500, "upstream exploded")), valid_key, on_notice=notices.append)

    message = session.submit("hello")

    assert message.content == FALLBACK_GENERIC
    assert session.state == TurnState.FAILED
    assert "500" in notices[0].description and "upstream exploded" in notices[0].description


def test_unauthorized_response_uses_credential_wording(valid_key):
    session = _session(_FakeClient(error=RequestFailed(401, "Invalid API key format")), valid_key)

    assert session.submit("hello").content == FALLBACK_INVALID_KEY


def test_unreadable_body_fails_turn(valid_key):
    body = FakeBody([b"data: never\n"], raw=None)
    session = _session(_FakeClient(body), valid_key)

    message = session.submit("hello")

    assert message.content == FALLBACK_GENERIC
    assert session.state == TurnState.FAILED
    assert body.closed == 1


def test_mid_stream_failure_fails_turn_and_releases_reader(valid_key):
    body = FakeBody([b"data: Partial\n"], fail_with=ConnectionError("reset"))
    session = _session(_FakeClient(body), valid_key)

    message = session.submit("hello")

    assert message.content == FALLBACK_GENERIC
    assert body.closed == 1
    assert all(m.content != "Partial" for m in session.messages)


def test_abandoned_turn_cannot_touch_newer_turn(valid_key):
    session = _session(_FakeClient(), valid_key)

    first = session.start_turn("first")
    first.feed("Old")
    session.abandon()
    second = session.start_turn("second")
    second.feed("New")

    assert first.feed(" late") is False
    assert first.finish() is None
    assert first.fail(RuntimeError("late")) is None
    assert session.accumulated_text == "New"

    message = second.finish()
    assert message.content == "New"
    assert [m.content for m in session.messages][-3:] == ["first", "second", "New"]


def test_abandon_during_stream_discards_result(valid_key):
    body = FakeBody([b"data: One\n", b"data: Two\n"])
    session = _session(_FakeClient(body), valid_key)
    session.on_update = lambda text: session.abandon()

    assert session.submit("hello") is None
    assert session.messages[-1].content == "hello"
    assert session.accumulated_text == ""
    assert body.closed == 1
    assert session.busy is False


def _frames(deltas):
    return FakeBody([b"data: " + d.encode("utf-8") + b"\n" for d in deltas] + [b"data: [DONE]\n"])


def test_event_split_into_small_deltas_keeps_exact_fields(valid_key):
    deltas = [
        "Sure", " thing", ".",
        '{"', "type", '":"', "calendar", '","', "title", '":"', "Lunch", " with", " Sam",
        '","', "start", '":"', "202", "4", "-", "01", "-", "01", "T", "12", ":", "00", ":", "00", "Z", '"}',
    ]
    session = _session(_FakeClient(_frames(deltas)), valid_key)

    message = session.submit("Lunch with Sam on new year's day")

    event = message.calendar_event
    assert event is not None
    assert event.title == "Lunch with Sam"
    assert event.start == "2024-01-01T12:00:00Z"
    assert build_google_event(event)["end"] == {"dateTime": "2024-01-01T13:00:00Z"}
    assert message.content.startswith("Sure thing.")


def test_turn_replaced_while_formatting_cannot_overwrite_text(valid_key, monkeypatch):
    session = _session(_FakeClient(), valid_key)
    first = session.start_turn("first")
    real_format = chat_session.format_chunk
    newer = {}

    def _format_then_replace(accumulated, token):
        if token == "Old":
            session.abandon()
            newer["turn"] = session.start_turn("second")
            newer["turn"].feed("New")
        return real_format(accumulated, token)

    monkeypatch.setattr(chat_session, "format_chunk", _format_then_replace)

    assert first.feed("Old") is False
    assert session.accumulated_text == "New"
    assert newer["turn"].finish().content == "New"


def test_abandon_from_another_thread_waits_for_token(valid_key, monkeypatch):
    session = _session(_FakeClient(), valid_key)
    first = session.start_turn("first")
    real_format = chat_session.format_chunk
    other_started = threading.Event()
    newer = {}

    def _slow_format(accumulated, token):
        if token == "Old":
            other_started.wait(timeout=2)
            time.sleep(0.05)
        return real_format(accumulated, token)

    def _replace():
        other_started.set()
        session.abandon()
        newer["turn"] = session.start_turn("second")
        newer["turn"].feed("New")

    monkeypatch.setattr(chat_session, "format_chunk", _slow_format)
    feeder = threading.Thread(target=first.feed, args=("Old",))
    replacer = threading.Thread(target=_replace)
    feeder.start()
    replacer.start()
    feeder.join(timeout=5)
    replacer.join(timeout=5)

    assert session.accumulated_text == "New"
    assert first.active is False
    assert newer["turn"].active is True


def test_declined_event_is_never_created(valid_key):
    created, asked, notices = [], [], []

    def _decline(event):
        asked.append(event.title)
        return False

    session = _session(
        _FakeClient(FakeBody([LUNCH_JSON])),
        valid_key,
        calendar=lambda event: created.append(event) or True,
        confirm=_decline,
        on_notice=notices.append,
    )
    message = session.submit("lunch please")

    assert asked == ["Lunch"]
    assert created == []
    assert message.calendar_event is None
    assert notices[-1].description == EVENT_DECLINED
    assert session.state == TurnState.COMPLETED


def test_confirmed_event_reaches_creator(valid_key):
    created = []
    session = _session(
        _FakeClient(FakeBody([LUNCH_JSON])),
        valid_key,
        calendar=lambda event: created.append(event) or True,
        confirm=lambda event: True,
    )

    assert session.submit("lunch please").calendar_event.title == "Lunch"
    assert [e.title for e in created] == ["Lunch"]
