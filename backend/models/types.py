"""Custom SQLAlchemy column types."""

from datetime import datetime, timezone

from sqlalchemy.types import DateTime, Text, TypeDecorator

from services.encryption import decrypt_value, encrypt_value


class UTCDateTime(TypeDecorator):
    """Store datetimes as naive UTC and always return tz-aware UTC datetimes.

    SQLite has no timezone-aware datetime type, so naive values are treated
    as UTC on the way in and get ``tzinfo`` attached on the way out.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class EncryptedString(TypeDecorator):
    """Text column that is Fernet-encrypted at rest.

    Application code reads and writes plaintext; only ciphertext reaches
    the database.
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: str | None, dialect):
        if value is None:
            return None
        return encrypt_value(value)

    def process_result_value(self, value: str | None, dialect):
        if value is None:
            return None
        return decrypt_value(value)
