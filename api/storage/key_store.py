from __future__ import annotations

import os
from typing import Optional, TypedDict

from config import DATA_DIR
from storage.local_store import LocalJsonFile
from storage.supabase_store import SupabaseTable, supabase_enabled

SUPABASE_KEYS_TABLE = os.environ.get("LUMEN_KEYS_TABLE_SUPABASE", "openai_keys")
KEY_STORE_PATH = os.environ.get("LUMEN_KEY_STORE_PATH", os.path.join(DATA_DIR, "openai_keys.json"))


class KeyRow(TypedDict):
    google_id: str
    key_content: str  # Fernet token, never the plaintext key


KEY_ROWS = SupabaseTable(SUPABASE_KEYS_TABLE, "google_id", KeyRow.__annotations__)


def _local() -> LocalJsonFile:
    # Local disk is the store when Supabase is not configured (dev).
    return LocalJsonFile(KEY_STORE_PATH)


def _as_row(raw: object) -> Optional[KeyRow]:
    if not isinstance(raw, dict) or not raw.get("google_id") or not raw.get("key_content"):
        return None
    return KeyRow(google_id=str(raw["google_id"]), key_content=str(raw["key_content"]))


def save_encrypted_key(google_id: str, key_content: str) -> KeyRow:
    row = KeyRow(google_id=google_id, key_content=key_content)
    if supabase_enabled():
        KEY_ROWS.upsert(dict(row))
    else:
        _local().update(lambda rows: rows.__setitem__(google_id, dict(row)))
    return row


def load_encrypted_key(google_id: str) -> Optional[KeyRow]:
    if supabase_enabled():
        return _as_row(KEY_ROWS.fetch(google_id))
    return _as_row(_local().read().get(google_id))


def delete_encrypted_key(google_id: str) -> bool:
    """True when a row was removed (always True against Supabase, which does not say)."""
    if supabase_enabled():
        KEY_ROWS.delete(google_id)
        return True
    return _local().update(lambda rows: rows.pop(google_id, None) is not None)
