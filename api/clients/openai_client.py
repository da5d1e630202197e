from __future__ import annotations

from typing import Any, Dict, Iterator, List

from openai import OpenAI

from config import OPENAI_MAX_TOKENS, OPENAI_MODEL

ROLES = ("system", "user", "assistant")

LUMEN_SYSTEM_PROMPT = (
    "You are Lumen, a friendly and concise AI assistant. "
    "Use recent conversation history to resolve pronouns and ambiguity. "
    "When the user asks you to schedule, remind or add something to their calendar, "
    "answer in one short sentence and include exactly one JSON object of the form "
    '{"type":"calendar","title":"...","start":"YYYY-MM-DDTHH:MM:SSZ","end":"YYYY-MM-DDTHH:MM:SSZ"}. '
    "Never include that JSON otherwise."
)


def make_client(api_key: str) -> OpenAI:
    """Keys belong to users, so there is one client per request."""
    return OpenAI(api_key=api_key)


def to_openai_messages(raw: Any, system_prompt: str = LUMEN_SYSTEM_PROMPT) -> List[Dict[str, str]]:
    """
    Chat history from the web client as OpenAI messages. Unknown roles are
    sent as user turns, empty turns are dropped, and the Lumen prompt leads
    unless the client supplied its own system message.
    """
    history: List[Dict[str, str]] = []
    for m in raw if isinstance(raw, list) else []:
        if not isinstance(m, dict):
            continue
        content = str(m.get("content") or "").strip()
        if content:
            history.append({"role": m.get("role") if m.get("role") in ROLES else "user", "content": content})
    if history and history[0]["role"] == "system":
        return history
    return [{"role": "system", "content": system_prompt}] + history


def complete_text(
    client: OpenAI,
    messages: List[Dict[str, str]],
    temperature: float = 0.6,
    max_tokens: int = OPENAI_MAX_TOKENS,
) -> str:
    resp = client.chat.completions.create(
        model=OPENAI_MODEL,
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
    )
    return (resp.choices[0].message.content or "").strip()


def stream_deltas(
    client: OpenAI,
    messages: List[Dict[str, str]],
    temperature: float = 0.6,
    max_tokens: int = OPENAI_MAX_TOKENS,
) -> Iterator[str]:
    """Content deltas in arrival order; role-only and finish chunks are skipped."""
    stream = client.chat.completions.create(
        model=OPENAI_MODEL,
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
        stream=True,
    )
    for chunk in stream:
        if chunk.choices and chunk.choices[0].delta.content:
            yield chunk.choices[0].delta.content
