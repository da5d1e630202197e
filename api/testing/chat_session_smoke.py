import argparse
import os
import sys

API_DIR = os.path.dirname(os.path.dirname(__file__))
if API_DIR not in sys.path:
    sys.path.insert(0, API_DIR)

from clients.lumen_client import LumenChatClient  # noqa: E402
from services.calendar_extractor import extract_calendar_event, is_affirmative, to_calendar_event  # noqa: E402
from services.chat_session import ChatSession  # noqa: E402
from services.text_formatter import normalize_text  # noqa: E402
from storage.chat_history_store import load_history, save_history  # noqa: E402


BASE_URL = os.getenv("LUMEN_API_BASE", "http://127.0.0.1:5050")
SESSION_ID = os.getenv("SMOKE_SESSION_ID", "smoke-user")
CREDENTIAL = os.getenv("OPENAI_API_KEY", "")
GOOGLE_TOKEN = os.getenv("SMOKE_GOOGLE_TOKEN", "")


def _ask(event) -> bool:
    answer = input(f'[chat_session_smoke] add "{event.title}" at {event.start}? [yes/no] ')
    return is_affirmative(answer)


def run_streamed(text: str) -> None:
    client = LumenChatClient(base_url=BASE_URL)
    calendar = (lambda event: client.create_calendar_event(event, GOOGLE_TOKEN)) if GOOGLE_TOKEN else None
    session = ChatSession(
        SESSION_ID,
        CREDENTIAL,
        client,
        history=load_history(SESSION_ID),
        calendar=calendar,
        confirm=_ask,
        on_notice=lambda n: print(f"[chat_session_smoke] notice: {n.title} - {n.description}"),
    )
    print(f"[chat_session_smoke] {BASE_URL} session={SESSION_ID} history={len(session.messages)}")
    reply = session.submit(text)
    if reply is None:
        print("[chat_session_smoke] submission ignored")
        return
    print("[chat_session_smoke] reply:", reply.content)
    if reply.calendar_event:
        print("[chat_session_smoke] event:", reply.calendar_event.model_dump())
    print("[chat_session_smoke] state:", session.state.value)
    save_history(SESSION_ID, session.messages)


def run_whole(text: str) -> None:
    client = LumenChatClient(base_url=BASE_URL)
    content = client.complete(SESSION_ID, [{"role": "user", "content": text}], CREDENTIAL)
    print("[chat_session_smoke] reply:", normalize_text(content))
    event = to_calendar_event(extract_calendar_event(content))
    if event:
        print("[chat_session_smoke] event:", event.model_dump())


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="One chat turn against a running Lumen API.")
    parser.add_argument("text", nargs="*", default=["Schedule lunch with Sam tomorrow at noon."])
    parser.add_argument("--no-stream", action="store_true", help="use the {content} reply instead of a stream")
    args = parser.parse_args()
    (run_whole if args.no_stream else run_streamed)(" ".join(args.text))
