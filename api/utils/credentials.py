from __future__ import annotations

from typing import Dict, Optional, Union

KEY_PREFIX = "sk-"
MIN_KEY_LENGTH = 48


# =========================
# Credential helpers
# =========================
def is_valid_format(key: Optional[str]) -> bool:
    """OpenAI secret keys start with 'sk-' and are at least 48 characters long."""
    if not key:
        return False
    key = key.strip()
    return key.startswith(KEY_PREFIX) and len(key) >= MIN_KEY_LENGTH


def credential_meta(key: str) -> Dict[str, Union[str, int]]:
    """Shape of the key (never the key itself) for server-side diagnostics."""
    key = (key or "").strip()
    return {
        "prefix": key[:6],
        "suffix": key[-4:] if len(key) > 4 else "",
        "length": len(key),
    }


def mask_key(key: Optional[str]) -> str:
    if not key:
        return "** MISSING **"
    meta = credential_meta(key)
    return f"{meta['prefix']}...{meta['suffix']} ({meta['length']})"
