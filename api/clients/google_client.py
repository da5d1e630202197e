from __future__ import annotations

import datetime as dt
import re
from typing import Any, Dict, Optional

import requests

from config import GOOGLE_CAL_BASE, HTTP_TIMEOUT_SECS
from utils.errors import ServiceError

_MINUTE_PRECISION = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}$")


# =========================
# Google Calendar REST
# =========================
def _google_call(
    method: str,
    access_token: str,
    path: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    json_body: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """One Calendar API call. 401 means the user must reconnect; other failures are upstream errors."""
    r = requests.request(
        method,
        f"{GOOGLE_CAL_BASE}{path}",
        headers={"Authorization": f"Bearer {access_token}"},
        params=params,
        json=json_body,
        timeout=HTTP_TIMEOUT_SECS,
    )
    if r.status_code == 401:
        raise ServiceError("Authentication error: Please reconnect your Google Calendar.", 401, "unauthorized")
    if r.status_code >= 400:
        raise ServiceError(f"Google {method} {path} -> {r.status_code} {r.text}", 502, "google_error")
    return r.json() if r.content else {}


def _google_get(access_token: str, path: str, params: dict) -> Dict[str, Any]:
    return _google_call("GET", access_token, path, params=params)


def _google_post(access_token: str, path: str, json_body: dict) -> Dict[str, Any]:
    return _google_call("POST", access_token, path, json_body=json_body)


# =========================
# Event times
# =========================
def _iso(moment: dt.datetime) -> str:
    """RFC 3339 with a `Z` suffix; naive datetimes are taken as UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=dt.timezone.utc)
    return moment.isoformat().replace("+00:00", "Z")


def _normalize_event_datetime(value: Optional[str]) -> str:
    """
    Event time as Google's `dateTime` accepts it. Chat replies often drop the
    seconds ("2024-03-04T09:30"), which Google rejects, so they are added.
    Offsets and `Z` pass through; zone-less times rely on the event timeZone.
    """
    value = (value or "").strip()
    if not value:
        raise ValueError("Empty datetime string")
    if _MINUTE_PRECISION.match(value):
        return f"{value}:00"
    return value


def _parse_event_datetime(value: str) -> dt.datetime:
    return dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
