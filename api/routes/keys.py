from __future__ import annotations

from flask import Blueprint, jsonify, request

from config import log
from services.key_service import (
    decrypt_api_key,
    fetch_openai_key,
    forget_openai_key,
    require_encryption,
    save_openai_key,
)
from utils.errors import ServiceError
from utils.json_helpers import jerror, jservice_error

keys_bp = Blueprint("keys", __name__)


@keys_bp.before_request
def _require_encryption():
    # Every key route needs the server secret; say so before looking at the body.
    try:
        require_encryption()
    except ServiceError as e:
        return jservice_error(e)
    return None


# =========================
# Encrypted OpenAI keys
# =========================
@keys_bp.post("/api/save-openai-key")
def save_key():
    """
    Body: { googleId: string, openaiApiKey: string }
    """
    data = request.get_json(force=True, silent=True) or {}
    google_id = (data.get("googleId") or "").strip()
    try:
        save_openai_key(google_id, data.get("openaiApiKey") or "")
        return jsonify({"success": True, "message": "API key saved successfully"})
    except ServiceError as e:
        return jservice_error(e)
    except Exception:
        log.exception("[Keys] save failed user=%s", google_id)
        return jerror("Failed to save API key", 500, "internal_error")


@keys_bp.post("/api/decrypt-key")
def decrypt_key():
    """
    Body: { encryptedKey: string, googleId: string, iv?: string }
    `iv` is accepted for older clients; the token carries its own.
    """
    data = request.get_json(force=True, silent=True) or {}
    encrypted = (data.get("encryptedKey") or "").strip()
    google_id = (data.get("googleId") or "").strip()
    if not encrypted or not google_id:
        return jerror("Missing required parameters", 400)
    try:
        return jsonify({"apiKey": decrypt_api_key(encrypted)})
    except ServiceError as e:
        return jservice_error(e)


@keys_bp.get("/api/get-openai-key")
def get_key():
    google_id = (request.args.get("googleId") or "").strip()
    if not google_id:
        return jerror("Missing googleId parameter", 400)
    try:
        return jsonify({"apiKey": fetch_openai_key(google_id)})
    except ServiceError as e:
        return jservice_error(e)
    except Exception:
        log.exception("[Keys] fetch failed user=%s", google_id)
        return jerror("Server error when processing request", 500, "internal_error")


@keys_bp.delete("/api/openai-key")
def delete_key():
    google_id = (request.args.get("googleId") or "").strip()
    try:
        return jsonify({"deleted": forget_openai_key(google_id)})
    except ServiceError as e:
        return jservice_error(e)
