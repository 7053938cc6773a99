"""OS keychain storage for Flint's partner credentials.

Only the aggregator partner keys, the bank provider's client certificate
paths and the at-rest encryption secret are kept here. Per-user aggregator
secrets live encrypted in the database (see ``services.credential_store``).
"""

import logging

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger(__name__)

SERVICE_NAME = "flint"

CREDENTIAL_KEYS: frozenset[str] = frozenset(
    {
        "SNAPTRADE_CLIENT_ID",
        "SNAPTRADE_CONSUMER_KEY",
        "TELLER_CERT_PATH",
        "TELLER_KEY_PATH",
        "CREDENTIAL_ENCRYPTION_KEY",
    }
)


def _is_allowed(key: str, action: str) -> bool:
    if key in CREDENTIAL_KEYS:
        return True
    logger.warning("Refusing to %s %s: not a keychain credential", action, key)
    return False


def get_credential(key: str) -> str | None:
    """Value stored for ``key``, or None when absent or the keychain is unusable."""
    try:
        return keyring.get_password(SERVICE_NAME, key)
    except KeyringError:
        logger.debug("Keychain read failed for %s", key, exc_info=True)
        return None


def set_credential(key: str, value: str) -> bool:
    """Store ``value`` under ``key``.

    Returns False for keys outside :data:`CREDENTIAL_KEYS`, for blank
    values and when the keychain refuses the write.
    """
    if not _is_allowed(key, "store"):
        return False
    if not (value or "").strip():
        logger.warning("Refusing to store a blank value for %s", key)
        return False
    try:
        keyring.set_password(SERVICE_NAME, key, value)
    except KeyringError:
        logger.warning("Keychain write failed for %s", key, exc_info=True)
        return False
    logger.info("Stored %s in keychain", key)
    return True


def delete_credential(key: str) -> bool:
    if not _is_allowed(key, "delete"):
        return False
    try:
        keyring.delete_password(SERVICE_NAME, key)
    except KeyringError:
        # PasswordDeleteError when the key was never stored
        logger.debug("Keychain delete failed for %s", key, exc_info=True)
        return False
    logger.info("Deleted %s from keychain", key)
    return True


def list_credentials() -> dict[str, str]:
    """Every credential currently stored, keyed by name."""
    stored = ((key, get_credential(key)) for key in sorted(CREDENTIAL_KEYS))
    return {key: value for key, value in stored if value is not None}
