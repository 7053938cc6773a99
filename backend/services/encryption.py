"""At-rest encryption for per-user provider secrets and bank access tokens.

Values are encrypted with Fernet using a key derived from
``CREDENTIAL_ENCRYPTION_KEY``.  The key is re-read on every call so a
rotated setting takes effect without restarting the process.
"""

import base64
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken

from config import settings

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when a value cannot be encrypted or decrypted."""

    pass


def encryption_key_available() -> bool:
    """Return True if an encryption secret is configured."""
    secret = settings.CREDENTIAL_ENCRYPTION_KEY
    return bool(secret and secret.strip())


def _fernet() -> Fernet:
    secret = settings.CREDENTIAL_ENCRYPTION_KEY
    if not secret or not secret.strip():
        raise EncryptionError(
            "CREDENTIAL_ENCRYPTION_KEY is required to store provider credentials"
        )
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_value(plaintext: str) -> str:
    """Encrypt a string and return the Fernet token as text."""
    return _fernet().encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt_value(token: str) -> str:
    """Decrypt a Fernet token produced by :func:`encrypt_value`.

    Raises:
        EncryptionError: If the token is corrupt or was encrypted with a
            different key.
    """
    try:
        return _fernet().decrypt(token.encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        raise EncryptionError(
            "Failed to decrypt credential (wrong CREDENTIAL_ENCRYPTION_KEY?)"
        ) from e


def hash_for_logging(value: str) -> str:
    """Return a short, stable SHA-256 prefix suitable for log lines."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]
