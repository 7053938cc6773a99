"""Tests for services.credential_manager."""

from unittest.mock import patch

from keyring.errors import KeyringError, PasswordDeleteError, PasswordSetError

from services.credential_manager import (
    CREDENTIAL_KEYS,
    SERVICE_NAME,
    delete_credential,
    get_credential,
    list_credentials,
    set_credential,
)


# ---------------------------------------------------------------------------
# get_credential
# ---------------------------------------------------------------------------


class TestGetCredential:
    def test_returns_value(self):
        with patch("services.credential_manager.keyring") as mock_keyring:
            mock_keyring.get_password.return_value = "secret123"
            result = get_credential("SNAPTRADE_CLIENT_ID")
        assert result == "secret123"
        mock_keyring.get_password.assert_called_once_with(
            SERVICE_NAME, "SNAPTRADE_CLIENT_ID"
        )

    def test_returns_none_when_not_found(self):
        with patch("services.credential_manager.keyring") as mock_keyring:
            mock_keyring.get_password.return_value = None
            assert get_credential("SNAPTRADE_CLIENT_ID") is None

    def test_returns_none_on_keyring_exception(self):
        with patch("services.credential_manager.keyring") as mock_keyring:
            mock_keyring.get_password.side_effect = KeyringError("no backend")
            assert get_credential("SNAPTRADE_CLIENT_ID") is None


# ---------------------------------------------------------------------------
# set_credential
# ---------------------------------------------------------------------------


class TestSetCredential:
    def test_stores_value(self):
        with patch("services.credential_manager.keyring") as mock_keyring:
            result = set_credential("SNAPTRADE_CONSUMER_KEY", "ck_live")
        assert result is True
        mock_keyring.set_password.assert_called_once_with(
            SERVICE_NAME, "SNAPTRADE_CONSUMER_KEY", "ck_live"
        )

    def test_rejects_non_credential_key(self):
        with patch("services.credential_manager.keyring") as mock_keyring:
            result = set_credential("DATABASE_URL", "sqlite://")
        assert result is False
        mock_keyring.set_password.assert_not_called()

    def test_rejects_empty_value(self):
        with patch("services.credential_manager.keyring") as mock_keyring:
            assert set_credential("SNAPTRADE_CLIENT_ID", "") is False
            assert set_credential("SNAPTRADE_CLIENT_ID", "   ") is False
        mock_keyring.set_password.assert_not_called()

    def test_returns_false_on_keyring_exception(self):
        with patch("services.credential_manager.keyring") as mock_keyring:
            mock_keyring.set_password.side_effect = PasswordSetError("locked")
            assert set_credential("SNAPTRADE_CLIENT_ID", "secret123") is False


# ---------------------------------------------------------------------------
# delete_credential
# ---------------------------------------------------------------------------


class TestDeleteCredential:
    def test_deletes_value(self):
        with patch("services.credential_manager.keyring") as mock_keyring:
            result = delete_credential("CREDENTIAL_ENCRYPTION_KEY")
        assert result is True
        mock_keyring.delete_password.assert_called_once_with(
            SERVICE_NAME, "CREDENTIAL_ENCRYPTION_KEY"
        )

    def test_rejects_non_credential_key(self):
        with patch("services.credential_manager.keyring") as mock_keyring:
            assert delete_credential("NOT_A_REAL_KEY") is False
        mock_keyring.delete_password.assert_not_called()

    def test_returns_false_on_keyring_exception(self):
        with patch("services.credential_manager.keyring") as mock_keyring:
            mock_keyring.delete_password.side_effect = PasswordDeleteError("not found")
            assert delete_credential("SNAPTRADE_CLIENT_ID") is False


# ---------------------------------------------------------------------------
# list_credentials
# ---------------------------------------------------------------------------


class TestListCredentials:
    def test_lists_stored_credentials(self):
        stored = {"SNAPTRADE_CLIENT_ID": "cid", "TELLER_CERT_PATH": "/certs/teller.pem"}
        with patch("services.credential_manager.keyring") as mock_keyring:
            mock_keyring.get_password.side_effect = lambda service, key: stored.get(key)
            assert list_credentials() == stored

    def test_returns_empty_when_nothing_stored(self):
        with patch("services.credential_manager.keyring") as mock_keyring:
            mock_keyring.get_password.return_value = None
            assert list_credentials() == {}


# ---------------------------------------------------------------------------
# CREDENTIAL_KEYS
# ---------------------------------------------------------------------------


class TestCredentialKeys:
    def test_contains_expected_keys(self):
        assert CREDENTIAL_KEYS == {
            "SNAPTRADE_CLIENT_ID",
            "SNAPTRADE_CONSUMER_KEY",
            "TELLER_CERT_PATH",
            "TELLER_KEY_PATH",
            "CREDENTIAL_ENCRYPTION_KEY",
        }

    def test_per_user_secrets_are_not_keychain_keys(self):
        assert "SNAPTRADE_USER_SECRET" not in CREDENTIAL_KEYS
        assert "DATABASE_URL" not in CREDENTIAL_KEYS
        assert "LOG_LEVEL" not in CREDENTIAL_KEYS

    def test_is_frozen(self):
        assert isinstance(CREDENTIAL_KEYS, frozenset)
