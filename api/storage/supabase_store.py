from __future__ import annotations

import os
from typing import Any, Dict, Iterable, Optional
from urllib.parse import quote

import requests

from config import log
from utils.errors import ServiceError

SUPABASE_URL = os.environ.get("LUMEN_URL_SUPABASE", "").rstrip("/")
SUPABASE_SERVICE_ROLE_KEY = os.environ.get("LUMEN_SERVICE_ROLE_KEY_SUPABASE", "")
SUPABASE_TIMEOUT_SECS = float(os.environ.get("LUMEN_SUPABASE_TIMEOUT_SECS", "5"))


def supabase_enabled() -> bool:
    return bool(SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY)


# =========================
# PostgREST table keyed by one column
# =========================
class SupabaseTable:
    """Rows of one Supabase table, addressed by a single key column."""

    def __init__(self, name: str, key_column: str, columns: Iterable[str]) -> None:
        self.name = name
        self.key_column = key_column
        self.columns = tuple(columns)

    @property
    def url(self) -> str:
        return f"{SUPABASE_URL}/rest/v1/{self.name}"

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "apikey": SUPABASE_SERVICE_ROLE_KEY,
            "Authorization": f"Bearer {SUPABASE_SERVICE_ROLE_KEY}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _match(self, key: str) -> str:
        return f"{self.url}?{self.key_column}=eq.{quote(key, safe='')}"

    def _check(self, resp: requests.Response, action: str) -> None:
        if resp.status_code >= 400:
            log.warning("[Supabase] %s %s failed: %s %s", action, self.name, resp.status_code, resp.text)
            raise ServiceError(f"Database error when {action} key", 500, "db_error")

    def fetch(self, key: str) -> Optional[Dict[str, Any]]:
        resp = requests.get(
            f"{self._match(key)}&select={','.join(self.columns)}",
            headers=self._headers(),
            timeout=SUPABASE_TIMEOUT_SECS,
        )
        self._check(resp, "fetching")
        rows = resp.json() or []
        return rows[0] if rows else None

    def upsert(self, row: Dict[str, Any]) -> None:
        resp = requests.post(
            self.url,
            headers=self._headers("resolution=merge-duplicates,return=minimal"),
            json=row,
            timeout=SUPABASE_TIMEOUT_SECS,
        )
        self._check(resp, "saving")

    def delete(self, key: str) -> None:
        resp = requests.delete(self._match(key), headers=self._headers("return=minimal"), timeout=SUPABASE_TIMEOUT_SECS)
        self._check(resp, "deleting")
