"""Tests for KeychainSettingsSource integration in config.py."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from config import KeychainSettingsSource, Settings
from services.credential_manager import CREDENTIAL_KEYS

# Environment variables that would interfere with Settings defaults if
# set in the test runner's shell.  We clear them for isolation.
_ENV_VARS_TO_CLEAR = {
    "DATABASE_URL",
    "ENVIRONMENT",
    "DEBUG",
    "LOG_LEVEL",
    "ORPHAN_CLEANUP_ENABLED",
    "ORPHAN_CLEANUP_INTERVAL_MINUTES",
    *CREDENTIAL_KEYS,
}


def _clean_env():
    """Return a dict suitable for ``os.environ`` patching that removes
    any variables the Settings class reads."""
    return {k: v for k, v in os.environ.items() if k not in _ENV_VARS_TO_CLEAR}


class TestKeychainSettingsSource:
    def test_keychain_value_overrides_default(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.side_effect = lambda key: (
                "keychain-value" if key == "SNAPTRADE_CLIENT_ID" else None
            )
            s = Settings(_env_file=None)
            assert s.SNAPTRADE_CLIENT_ID == "keychain-value"

    def test_init_value_overrides_keychain(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential", return_value="keychain-value"),
        ):
            s = Settings(_env_file=None, SNAPTRADE_CLIENT_ID="init-value")
            assert s.SNAPTRADE_CLIENT_ID == "init-value"

    def test_non_credential_fields_skip_keychain(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.return_value = "should-not-be-used"
            s = Settings(_env_file=None)
            assert s.DATABASE_URL == "sqlite:///./flint.db"
            called_keys = {call.args[0] for call in mock_get.call_args_list}
            assert called_keys <= CREDENTIAL_KEYS

    def test_env_fallback_when_keychain_empty(self):
        env = _clean_env()
        env["CREDENTIAL_ENCRYPTION_KEY"] = "from-env"
        with (
            patch.dict(os.environ, env, clear=True),
            patch("config.get_credential", return_value=None),
        ):
            s = Settings(_env_file=None)
            assert s.SNAPTRADE_CLIENT_ID == ""
            assert s.CREDENTIAL_ENCRYPTION_KEY == "from-env"

    def test_keychain_overrides_env_var(self):
        env = _clean_env()
        env["SNAPTRADE_CLIENT_ID"] = "from-env"
        with (
            patch.dict(os.environ, env, clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.side_effect = lambda key: (
                "from-keychain" if key == "SNAPTRADE_CLIENT_ID" else None
            )
            s = Settings(_env_file=None)
            assert s.SNAPTRADE_CLIENT_ID == "from-keychain"

    def test_keychain_cert_path_is_stripped(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential") as mock_get,
        ):
            mock_get.side_effect = lambda key: (
                "  /certs/teller.pem\n" if key == "TELLER_CERT_PATH" else None
            )
            s = Settings(_env_file=None)
            assert s.TELLER_CERT_PATH == "/certs/teller.pem"

    def test_source_is_in_priority_chain(self):
        sources = Settings.settings_customise_sources(
            Settings,
            init_settings=object(),
            env_settings=object(),
            dotenv_settings=object(),
            file_secret_settings=object(),
        )
        source_types = [type(s) for s in sources]
        assert source_types.index(KeychainSettingsSource) == 1


class TestSettingsDefaults:
    def test_defaults(self):
        with (
            patch.dict(os.environ, _clean_env(), clear=True),
            patch("config.get_credential", return_value=None),
        ):
            s = Settings(_env_file=None)
        assert s.CONNECTION_STALE_HOURS == 48
        assert s.ORPHAN_CLEANUP_ENABLED is False
        assert s.ORPHAN_CLEANUP_MIN_AGE_HOURS == 24

    def test_env_bool_parsing(self):
        env = _clean_env()
        env["ORPHAN_CLEANUP_ENABLED"] = "true"
        with (
            patch.dict(os.environ, env, clear=True),
            patch("config.get_credential", return_value=None),
        ):
            assert Settings(_env_file=None).ORPHAN_CLEANUP_ENABLED is True

    def test_invalid_log_level_rejected(self):
        env = _clean_env()
        env["LOG_LEVEL"] = "VERBOS"
        with (
            patch.dict(os.environ, env, clear=True),
            patch("config.get_credential", return_value=None),
        ):
            with pytest.raises(ValidationError, match="LOG_LEVEL"):
                Settings(_env_file=None)

    def test_log_level_is_normalized(self):
        env = _clean_env()
        env["LOG_LEVEL"] = " debug "
        with (
            patch.dict(os.environ, env, clear=True),
            patch("config.get_credential", return_value=None),
        ):
            assert Settings(_env_file=None).LOG_LEVEL == "DEBUG"

    def test_non_positive_interval_rejected(self):
        env = _clean_env()
        env["ORPHAN_CLEANUP_INTERVAL_MINUTES"] = "0"
        with (
            patch.dict(os.environ, env, clear=True),
            patch("config.get_credential", return_value=None),
        ):
            with pytest.raises(ValidationError, match="ORPHAN_CLEANUP_INTERVAL_MINUTES"):
                Settings(_env_file=None)
