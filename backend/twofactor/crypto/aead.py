# backend/twofactor/crypto/aead.py
"""
AES-256-GCM envelope for TOTP secrets at rest.

Stored form is ``enc:v1:`` + base64(nonce + ciphertext). Values without the
prefix are treated as plaintext base32, so a store can be switched to
encryption without migrating existing rows.
"""
import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from twofactor.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

NONCE_LEN = 12
ENVELOPE_PREFIX = "enc:v1:"


def encrypt_aesgcm(key: bytes, plaintext: bytes, aad: bytes = b"") -> bytes:
    if len(key) != 32:
        raise ValueError("AES-256-GCM requires 32-byte key")
    nonce = os.urandom(NONCE_LEN)
    ct = AESGCM(key).encrypt(nonce, plaintext, aad)
    return nonce + ct


def decrypt_aesgcm(key: bytes, blob: bytes, aad: bytes = b"") -> bytes:
    if len(key) != 32:
        raise ValueError("AES-256-GCM requires 32-byte key")
    if len(blob) < NONCE_LEN + 16:
        raise ValueError("Invalid ciphertext blob")
    nonce = blob[:NONCE_LEN]
    ct = blob[NONCE_LEN:]
    return AESGCM(key).decrypt(nonce, ct, aad)


def load_key(raw: str) -> bytes | None:
    """Decode a base64 key from settings; empty means encryption is off."""
    if not raw:
        return None
    try:
        key = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        logger.error("SECRET_ENCRYPTION_KEY is not valid base64")
        raise ConfigurationError("SECRET_ENCRYPTION_KEY is not valid base64") from e
    if len(key) != 32:
        logger.error("SECRET_ENCRYPTION_KEY has wrong length")
        raise ConfigurationError("SECRET_ENCRYPTION_KEY must be 32 bytes (base64-encoded)")
    return key


def seal_secret(key: bytes | None, secret: str, aad: str) -> str:
    if not secret or key is None:
        return secret
    blob = encrypt_aesgcm(key, secret.encode("ascii"), aad=aad.encode("utf-8"))
    return ENVELOPE_PREFIX + base64.b64encode(blob).decode("ascii")


def open_secret(key: bytes | None, stored: str | None, aad: str) -> str:
    if not stored:
        return ""
    if not stored.startswith(ENVELOPE_PREFIX):
        return stored
    if key is None:
        raise ConfigurationError("Encrypted TOTP secret found but no SECRET_ENCRYPTION_KEY set")
    blob = base64.b64decode(stored[len(ENVELOPE_PREFIX):])
    try:
        return decrypt_aesgcm(key, blob, aad=aad.encode("utf-8")).decode("ascii")
    except (InvalidTag, ValueError) as e:
        logger.error("Failed to decrypt stored TOTP secret")
        raise ConfigurationError("Stored TOTP secret cannot be decrypted") from e
