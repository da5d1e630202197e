from __future__ import annotations

import json
import os
import tempfile
from threading import RLock
from typing import Any, Callable, TypeVar

from config import log

T = TypeVar("T")

# One lock for every local document; writes are rare and small.
_LOCK = RLock()


class LocalJsonFile:
    """
    A JSON document on local disk, used when no database is configured and
    for per-user chat history. Writes go to a temp file and are renamed into
    place, so a reader never sees half a document.
    """

    def __init__(self, path: str, default: Callable[[], Any] = dict) -> None:
        self.path = path
        self.default = default

    def read(self) -> Any:
        with _LOCK:
            if not os.path.exists(self.path):
                return self.default()
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    return json.load(f)
            except (OSError, ValueError):
                log.warning("[LocalStore] unreadable %s; starting empty", self.path)
                return self.default()

    def write(self, obj: Any) -> None:
        folder = os.path.dirname(self.path) or "."
        with _LOCK:
            os.makedirs(folder, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=folder, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(obj, f, ensure_ascii=False, indent=2)
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.remove(tmp)
                raise

    def update(self, mutate: Callable[[Any], T]) -> T:
        """Read, let `mutate` change the document in place, write it back."""
        with _LOCK:
            doc = self.read()
            result = mutate(doc)
            self.write(doc)
            return result
