"""AES-256-GCM encryption for monitor secrets (sensitive headers, request bodies).

Ciphertext is tagged with an ``enc:`` prefix so that legacy plaintext values
pass through decryption unchanged.
"""
import base64
import binascii
import logging
import os
from typing import Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config import settings
from ..exceptions import ConfigurationError
from .security import is_sensitive_header

logger = logging.getLogger(__name__)

PREFIX = "enc:"
NONCE_LENGTH = 12  # 96 bits for GCM
KEY_LENGTH = 32

_warned_missing_key = False


def generate_key() -> str:
    """Generate a new base64 encoded 256-bit key (for initial setup)."""
    return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode()


def _load_key(key: Optional[str]) -> Optional[bytes]:
    global _warned_missing_key
    key = key if key is not None else settings.encryption_key
    if not key:
        if not _warned_missing_key:
            logger.warning("ENCRYPTION_KEY not set - sensitive data will not be encrypted")
            _warned_missing_key = True
        return None
    try:
        raw = base64.b64decode(key, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError("ENCRYPTION_KEY is not valid base64") from e
    if len(raw) != KEY_LENGTH:
        raise ConfigurationError("ENCRYPTION_KEY must decode to 32 bytes")
    return raw


def is_encrypted(value: Optional[str]) -> bool:
    return bool(value) and value.startswith(PREFIX)


def is_encryption_enabled() -> bool:
    return bool(settings.encryption_key)


def encrypt_sensitive(value: str, key: Optional[str] = None) -> str:
    """Encrypt a value; returns it unchanged when no key is configured.

    New input is always encrypted, even when it happens to start with the
    ``enc:`` tag. Stored ciphertext is carried over by the caller instead.
    """
    raw_key = _load_key(key)
    if raw_key is None:
        return value
    nonce = os.urandom(NONCE_LENGTH)
    ciphertext = AESGCM(raw_key).encrypt(nonce, value.encode("utf-8"), None)
    return PREFIX + base64.b64encode(nonce + ciphertext).decode()


def decrypt(value: str, key: Optional[str] = None) -> str:
    """Decrypt an ``enc:`` value; plaintext legacy values are returned as-is.

    Without a key nothing was encrypted on the way in, so values are read
    back unchanged.
    """
    if not is_encrypted(value):
        return value
    raw_key = _load_key(key)
    if raw_key is None:
        return value
    try:
        combined = base64.b64decode(value[len(PREFIX):], validate=True)
        nonce, ciphertext = combined[:NONCE_LENGTH], combined[NONCE_LENGTH:]
        return AESGCM(raw_key).decrypt(nonce, ciphertext, None).decode("utf-8")
    except (InvalidTag, binascii.Error, ValueError) as e:
        raise ConfigurationError("Failed to decrypt value") from e


def encrypt_headers(headers: Optional[Dict[str, str]], key: Optional[str] = None) -> Optional[Dict[str, str]]:
    """Encrypt only the header values classified as sensitive."""
    if headers is None:
        return None
    return {
        name: encrypt_sensitive(value, key) if is_sensitive_header(name) else value
        for name, value in headers.items()
    }


def encrypt_headers_keeping(
    incoming: Optional[Dict[str, str]],
    kept: Dict[str, str],
    key: Optional[str] = None,
) -> Optional[Dict[str, str]]:
    """Encrypt fresh header values and splice in already stored ones by name."""
    if incoming is None:
        return None
    fresh = encrypt_headers({name: value for name, value in incoming.items() if name not in kept}, key)
    return {name: kept[name] if name in kept else fresh[name] for name in incoming}


def decrypt_headers(headers: Optional[Dict[str, str]], key: Optional[str] = None) -> Dict[str, str]:
    if not headers:
        return {}
    return {name: decrypt(value, key) for name, value in headers.items()}


def encrypt_body(body: Optional[str], key: Optional[str] = None) -> Optional[str]:
    """Request bodies may carry credentials, so they are always encrypted."""
    if not body:
        return body
    return encrypt_sensitive(body, key)


def decrypt_body(body: Optional[str], key: Optional[str] = None) -> Optional[str]:
    if not body:
        return body
    return decrypt(body, key)
