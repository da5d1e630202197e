from __future__ import annotations

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

import config
from config import log
from storage.key_store import delete_encrypted_key, load_encrypted_key, save_encrypted_key
from utils.credentials import is_valid_format, mask_key
from utils.errors import CredentialInvalidFormat, EncryptionConfigError, KeyNotFound, ServiceError


# =========================
# Per-user OpenAI key encryption
# =========================
def _fernet(secret: Optional[str] = None) -> Fernet:
    """Fernet key derived from ENCRYPTION_SECRET (sha256 -> urlsafe base64)."""
    secret = secret if secret is not None else config.ENCRYPTION_SECRET
    if not secret:
        log.error("ENCRYPTION_SECRET is not set; key encryption is unavailable")
        raise EncryptionConfigError()
    digest = hashlib.sha256(secret.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def require_encryption() -> None:
    """Raise EncryptionConfigError unless keys can be encrypted and decrypted."""
    _fernet()


def encrypt_api_key(api_key: str) -> str:
    return _fernet().encrypt(api_key.encode()).decode()


def decrypt_api_key(encrypted: str) -> str:
    """Decrypt and re-validate; a key that fails the format check is never handed out."""
    f = _fernet()
    try:
        api_key = f.decrypt(encrypted.encode()).decode()
    except (InvalidToken, ValueError) as e:
        raise ServiceError("Failed to decrypt API key", 500, "decrypt_failed") from e
    if not is_valid_format(api_key):
        raise CredentialInvalidFormat("Invalid API key format after decryption")
    return api_key


def save_openai_key(google_id: str, api_key: str) -> None:
    api_key = (api_key or "").strip()
    if not google_id or not api_key:
        raise ServiceError("Missing required parameters", 400)
    if not is_valid_format(api_key):
        raise CredentialInvalidFormat()
    save_encrypted_key(google_id, encrypt_api_key(api_key))
    log.info("[Keys] saved key %s for user=%s", mask_key(api_key), google_id)


def fetch_openai_key(google_id: str) -> str:
    require_encryption()
    row = load_encrypted_key(google_id)
    if not row or not row.get("key_content"):
        raise KeyNotFound()
    return decrypt_api_key(row["key_content"])


def forget_openai_key(google_id: str) -> bool:
    if not google_id:
        raise ServiceError("Missing googleId parameter", 400)
    return delete_encrypted_key(google_id)
