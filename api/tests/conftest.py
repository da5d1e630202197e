import os
import sys

import pytest

# Ensure api/ is on sys.path so imports like "services.*" work in tests.
API_DIR = os.path.dirname(os.path.dirname(__file__))
if API_DIR not in sys.path:
    sys.path.insert(0, API_DIR)

VALID_KEY = "sk-" + "a" * 41 + "WXYZ"


class FakeBody:
    """Stands in for a streaming requests.Response."""

    def __init__(self, chunks, raw=True, fail_with=None):
        self._chunks = list(chunks)
        self.raw = raw
        self.fail_with = fail_with
        self.closed = 0

    def iter_content(self, chunk_size=None):
        for chunk in self._chunks:
            yield chunk
        if self.fail_with is not None:
            raise self.fail_with

    def close(self):
        self.closed += 1


@pytest.fixture
def fake_body():
    return FakeBody


@pytest.fixture
def valid_key():
    return VALID_KEY


@pytest.fixture
def tmp_stores(tmp_path, monkeypatch):
    """Local-disk stores under tmp_path, Supabase off, encryption configured."""
    import config
    import storage.chat_history_store as history_store
    import storage.key_store as key_store

    monkeypatch.setattr(config, "ENCRYPTION_SECRET", "test-encryption-secret")
    monkeypatch.setattr(key_store, "supabase_enabled", lambda: False)
    monkeypatch.setattr(key_store, "KEY_STORE_PATH", str(tmp_path / "keys.json"))
    monkeypatch.setattr(history_store, "HISTORY_DIR", str(tmp_path / "history"))
    return tmp_path


@pytest.fixture
def client(tmp_stores):
    from app import create_app

    app = create_app()
    app.config.update(TESTING=True)
    return app.test_client()
