from __future__ import annotations

from flask import Blueprint

import config
from storage.supabase_store import supabase_enabled
from utils.debug_events import debug_enabled
from utils.json_helpers import jok

meta_bp = Blueprint("meta", __name__)


def _key_store_backend() -> str:
    return "supabase" if supabase_enabled() else "local"


@meta_bp.get("/health")
def health():
    """Liveness plus what a chat turn depends on: model, key encryption, key storage."""
    return jok(
        {
            "name": config.APP_NAME,
            "version": config.APP_VERSION,
            "model": config.OPENAI_MODEL,
            "encryption": bool(config.ENCRYPTION_SECRET),
            "supabase": supabase_enabled(),
            "key_store": _key_store_backend(),
            "debug_console": debug_enabled(),
        }
    )


@meta_bp.get("/version")
def version():
    return jok({"name": config.APP_NAME, "version": config.APP_VERSION})
