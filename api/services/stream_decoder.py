from __future__ import annotations

import codecs
import json
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple, Union

from config import log
from utils.errors import StreamUnavailable

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

Chunk = Union[bytes, bytearray, str]
# (token, raw payload): the token is trimmed, the raw payload only loses the
# single separator space after "data:".
Frame = Tuple[str, str]


def extract_delta_content(payload: str) -> Optional[str]:
    """
    `choices[0].delta.content` of an OpenAI-style chunk frame, or None when
    the payload is not such a frame (role-only deltas, finish frames, junk).
    """
    try:
        data = json.loads(payload)
    except ValueError:
        log.debug("[StreamDecoder] non-JSON delta frame skipped: %r", payload[:80])
        return None
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) else None


class StreamDecoder:
    """
    Incremental decoder for newline-delimited `data:` frames.

    Chunks may split a line (or a multi-byte UTF-8 character) anywhere; only
    complete lines are classified. `done` flips when the `[DONE]` sentinel is
    seen, but the caller keeps reading until the source is exhausted.

    With `json_deltas=True` each payload is an upstream OpenAI chunk and the
    token is its delta content; frames without content are dropped.
    """

    def __init__(self, json_deltas: bool = False) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.json_deltas = json_deltas
        self.done = False

    def feed(self, chunk: Chunk) -> List[Frame]:
        if isinstance(chunk, (bytes, bytearray)):
            text = self._utf8.decode(bytes(chunk))
        else:
            text = chunk or ""
        self._buffer += text
        if "\n" not in self._buffer:
            return []
        *lines, self._buffer = self._buffer.split("\n")
        return self._classify(lines)

    def flush(self) -> List[Frame]:
        """Emit whatever is left once the source is exhausted."""
        tail = self._utf8.decode(b"", final=True)
        rest = self._buffer + tail
        self._buffer = ""
        if not rest:
            return []
        return self._classify(rest.split("\n"))

    def _classify(self, lines: Iterable[str]) -> List[Frame]:
        frames: List[Frame] = []
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith(DATA_PREFIX):
                continue
            raw = line[len(DATA_PREFIX):]
            if raw.startswith(" "):
                raw = raw[1:]
            content = raw.strip()
            if content == DONE_SENTINEL:
                self.done = True
                log.debug("[StreamDecoder] sentinel received")
                continue
            if self.json_deltas:
                delta = extract_delta_content(content)
                if delta is None:
                    continue
                frames.append((delta.strip(), delta))
                continue
            frames.append((content, raw))
        return frames


def _chunks_of(source: Any) -> Iterator[Chunk]:
    if source is None:
        raise StreamUnavailable()
    if hasattr(source, "iter_content"):
        # requests.Response (stream=True)
        if getattr(source, "raw", True) is None:
            raise StreamUnavailable()
        try:
            return iter(source.iter_content(chunk_size=None))
        except Exception as e:
            raise StreamUnavailable(f"Unable to read response stream: {e}") from e
    try:
        return iter(source)
    except TypeError as e:
        raise StreamUnavailable(f"Unable to read response stream: {e}") from e


class TokenStream:
    """
    Ordered iterator of content tokens over one response body.

    The source is released exactly once: when iteration finishes, when a read
    fails, or when `close()` is called by an owner that abandons the stream.
    Usable as a context manager. `last_raw` holds the untrimmed payload of
    the token most recently returned.
    """

    def __init__(
        self,
        chunks: Iterator[Chunk],
        closer: Optional[Callable[[], None]] = None,
        json_deltas: bool = False,
    ) -> None:
        self._chunks = chunks
        self._closer = closer
        self._decoder = StreamDecoder(json_deltas=json_deltas)
        self._pending: List[Frame] = []
        self._exhausted = False
        self.last_raw = ""
        self.closed = False

    @property
    def done(self) -> bool:
        return self._decoder.done

    def __iter__(self) -> "TokenStream":
        return self

    def __next__(self) -> str:
        if self.closed:
            raise StopIteration
        while not self._pending:
            if self._exhausted:
                self.close()
                raise StopIteration
            try:
                chunk = next(self._chunks)
            except StopIteration:
                self._exhausted = True
                self._pending.extend(self._decoder.flush())
                if not self._decoder.done:
                    log.info("[StreamDecoder] stream ended without [DONE]")
                continue
            except Exception:
                self.close()
                raise
            self._pending.extend(self._decoder.feed(chunk))
        token, self.last_raw = self._pending.pop(0)
        return token

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._closer:
            try:
                self._closer()
            except Exception:
                log.warning("[StreamDecoder] failed to close stream source", exc_info=True)

    def __enter__(self) -> "TokenStream":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def open_token_stream(
    source: Any,
    on_close: Optional[Callable[[], None]] = None,
    json_deltas: bool = False,
) -> TokenStream:
    """
    Turn a byte stream into a TokenStream.

    `source` is a streaming `requests.Response` or any iterable of byte/text
    chunks. Raises StreamUnavailable before any token when the body cannot be
    read; the source is still closed in that case.
    """
    closer = on_close or getattr(source, "close", None)
    try:
        chunks = _chunks_of(source)
    except StreamUnavailable:
        if closer:
            closer()
        raise
    return TokenStream(chunks, closer, json_deltas=json_deltas)


def decode_stream(chunks: Iterable[Chunk], json_deltas: bool = False) -> List[str]:
    """Decode a complete body at once (tests, smoke scripts, replays)."""
    with open_token_stream(chunks, json_deltas=json_deltas) as stream:
        return list(stream)
