"""
Credential store for upstream AI provider keys.

AES-256-GCM with a PBKDF2-HMAC-SHA256 derived key. Ciphertexts are stored as
``<nonce_hex>:<ciphertext_hex>`` (the GCM tag is appended to the ciphertext).
"""

import hashlib
import logging
import os
from functools import lru_cache
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from app.config import settings

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
NONCE_LENGTH = 12
KDF_SALT = b"ai-accounts-salt"
KDF_ITERATIONS = 10_000


class CredentialDecryptError(Exception):
    """Raised when a stored credential blob cannot be decrypted."""


@lru_cache(maxsize=4)
def _derive_key(secret: str) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=KDF_SALT,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(secret.encode("utf-8"))


def _encryption_secret(secret: Optional[str] = None) -> str:
    return secret or settings.ENCRYPTION_KEY or settings.SECRET_KEY


def encrypt(text: str, secret: Optional[str] = None) -> str:
    key = _derive_key(_encryption_secret(secret))
    nonce = os.urandom(NONCE_LENGTH)
    ciphertext = AESGCM(key).encrypt(nonce, text.encode("utf-8"), None)
    return f"{nonce.hex()}:{ciphertext.hex()}"


def decrypt(encrypted_data: str, secret: Optional[str] = None) -> str:
    """Decrypt a blob produced by :func:`encrypt`.

    Raises:
        CredentialDecryptError: malformed blob, wrong key or tampered data.
    """
    if not encrypted_data or encrypted_data.count(":") != 1:
        raise CredentialDecryptError("Malformed credential blob")

    nonce_hex, ciphertext_hex = encrypted_data.split(":")
    try:
        nonce = bytes.fromhex(nonce_hex)
        ciphertext = bytes.fromhex(ciphertext_hex)
        key = _derive_key(_encryption_secret(secret))
        return AESGCM(key).decrypt(nonce, ciphertext, None).decode("utf-8")
    except (ValueError, InvalidTag) as e:
        logger.error(f"Credential decryption failed: {type(e).__name__}")
        raise CredentialDecryptError("Credential decryption failed") from e


def validate_api_key_format(key: str) -> bool:
    """Known provider prefixes pass early; anything of 20+ chars is accepted."""
    if key.startswith("sk-") and len(key) >= 40:
        return True
    if key.startswith("sk-ant-") and len(key) >= 50:
        return True
    if key.startswith("AIza") and len(key) >= 35:
        return True
    return len(key) >= 20


def generate_key_preview(key: str) -> str:
    """Masked form of a key for display, e.g. ``sk-abcde********123456``."""
    if len(key) < 10:
        return key

    start = key[: min(8, len(key) - 6)]
    end = key[-6:]
    middle = "*" * min(20, len(key) - len(start) - len(end))
    return f"{start}{middle}{end}"


def hash_api_key(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()
