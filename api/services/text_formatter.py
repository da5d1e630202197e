from __future__ import annotations

import re
from typing import Iterable

# =========================
# Streaming text formatting
# =========================
# Heuristic, not grammatical: a token boundary that lands on an ambiguous spot
# (e.g. "U.S" + "A") can format differently from the whole string.

_SENTENCE_END = re.compile(r"[.!?]$")
_STARTS_UPPER = re.compile(r"^[A-Z]")
_ALNUM = re.compile(r"[a-zA-Z0-9]")
_ENDS_SPACED = re.compile(r"[\s.,!?;:]$")

_WHITESPACE_RUN = re.compile(r"\s{2,}")
_COMMA_TIGHT = re.compile(r",(?=[^\s\"])")
_SENTENCE_JOIN = re.compile(r"(?<=[.!?])(?=[A-Z])")

PARAGRAPH_BREAK = "\n\n"


def format_chunk(accumulated: str, token: str) -> str:
    """
    Append one streamed token to the text shown so far.

    - blank tokens are dropped
    - "...end." + "Next" gets a paragraph break
    - "word" + "word" gets a single space
    - anything else is concatenated as-is
    """
    if not token.strip():
        return accumulated

    if (
        _SENTENCE_END.search(accumulated)
        and _STARTS_UPPER.match(token)
        and not accumulated.endswith(PARAGRAPH_BREAK)
    ):
        return accumulated + PARAGRAPH_BREAK + token

    needs_space = (
        bool(accumulated)
        and bool(_ALNUM.match(accumulated[-1]))
        and bool(_ALNUM.match(token[0]))
        and not _ENDS_SPACED.search(accumulated)
    )
    return accumulated + (" " if needs_space else "") + token


def format_tokens(tokens: Iterable[str], accumulated: str = "") -> str:
    for token in tokens:
        accumulated = format_chunk(accumulated, token)
    return accumulated


def _collapse_run(match: "re.Match[str]") -> str:
    run = match.group(0)
    text = match.string
    before = text[match.start() - 1] if match.start() > 0 else ""
    after = text[match.end()] if match.end() < len(text) else ""
    # Keep paragraph breaks this pass itself produces, so a second pass is a no-op.
    if run == PARAGRAPH_BREAK and before and before in ".!?" and "A" <= after <= "Z":
        return run
    return " "


def normalize_text(text: str) -> str:
    """
    Final cleanup over a fully assembled reply.

    Collapses whitespace runs, puts a space after tight commas and breaks
    "end.Next" into paragraphs. Idempotent.
    """
    if not text:
        return text
    out = _WHITESPACE_RUN.sub(_collapse_run, text)
    out = _COMMA_TIGHT.sub(", ", out)
    out = _SENTENCE_JOIN.sub(PARAGRAPH_BREAK, out)
    return out
