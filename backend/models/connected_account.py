"""ConnectedAccount model - a linked bank or crypto account."""

from decimal import Decimal

from sqlalchemy import Column, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.types import EncryptedString, UTCDateTime
from models.utils import generate_uuid, utcnow


class ConnectedAccount(Base):
    """A bank, credit or crypto account linked by the user.

    Brokerage accounts are not stored here; they are read live from the
    aggregator. ``balance`` caches the last successfully fetched balance
    so the dashboard can fall back to it when the provider grant expires.
    For credit accounts it holds the signed (negative) debt.
    """

    __tablename__ = "connected_accounts"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "provider", "external_account_id",
            name="uix_user_provider_external_account",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    provider = Column(String, nullable=False)  # "bank" | "crypto"
    external_account_id = Column(String, nullable=False)
    access_token = Column(EncryptedString, nullable=True)
    enrollment_id = Column(String, nullable=True)
    institution_name = Column(String, nullable=False, default="Unknown")
    account_name = Column(String, nullable=False)
    display_name = Column(String, nullable=False)
    account_type = Column(String, nullable=False, default="bank")  # "bank" | "credit" | "crypto"
    account_subtype = Column(String, nullable=True)
    mask = Column(String, nullable=True)
    currency = Column(String, nullable=False, default="USD")
    balance = Column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    status = Column(String, nullable=False, default="connected")  # "connected" | "needs_reconnection" | "closed"
    last_synced = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="connected_accounts")
