"""Application configuration using pydantic-settings.

Sources, highest priority first: constructor arguments, the OS keychain
(credential keys only), environment variables, ``.env``.
"""

from typing import Any

from pydantic import Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential

LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Settings source backed by ``keyring``.

    Only fields named in :data:`~services.credential_manager.CREDENTIAL_KEYS`
    are looked up; a key missing from the keychain falls through to the
    environment.
    """

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        key = field_name.upper()
        value = get_credential(key) if key in CREDENTIAL_KEYS else None
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        found: dict[str, Any] = {}
        for name, info in self.settings_cls.model_fields.items():
            value, key, _ = self.get_field_value(info, name)
            if value is not None:
                found[key] = value
        return found


class Settings(BaseSettings):
    """Flint settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        keychain = KeychainSettingsSource(settings_cls)
        return init_settings, keychain, env_settings, dotenv_settings, file_secret_settings

    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./flint.db"

    # Fernet key material for provider secrets and bank access tokens
    CREDENTIAL_ENCRYPTION_KEY: str = ""

    # SnapTrade partner credentials
    SNAPTRADE_CLIENT_ID: str = ""
    SNAPTRADE_CONSUMER_KEY: str = ""
    SNAPTRADE_REDIRECT_URI: str = ""

    # Teller mTLS certificate; the sandbox accepts requests without one
    TELLER_BASE_URL: str = "https://api.teller.io"
    TELLER_CERT_PATH: str = ""
    TELLER_KEY_PATH: str = ""

    PROVIDER_TIMEOUT_SECONDS: float = Field(default=15.0, gt=0)
    CONNECTION_STALE_HOURS: int = Field(default=48, gt=0)

    ORPHAN_CLEANUP_ENABLED: bool = False
    ORPHAN_CLEANUP_INTERVAL_MINUTES: int = Field(default=360, gt=0)
    ORPHAN_CLEANUP_MIN_AGE_HOURS: int = Field(default=24, ge=0)

    REGISTER_RATE_LIMIT: int = Field(default=5, gt=0)
    REGISTER_RATE_WINDOW_SECONDS: int = Field(default=60, gt=0)

    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = str(v).strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(LOG_LEVELS)}, got {v!r}")
        return level

    @field_validator("TELLER_CERT_PATH", "TELLER_KEY_PATH", mode="before")
    @classmethod
    def strip_paths(cls, v: Any) -> Any:
        """Drop whitespace pasted along with a path."""
        return v.strip() if isinstance(v, str) else v


settings = Settings()
