"""ProviderIdentity model - a user's registration with the brokerage aggregator."""

from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import relationship

from database import Base
from models.types import EncryptedString, UTCDateTime
from models.utils import utcnow


class ProviderIdentity(Base):
    """The aggregator-side user id and per-user secret for one internal user.

    The primary key is the internal user id, so at most one identity can
    exist per user. The secret is encrypted at rest.
    """

    __tablename__ = "provider_identities"

    internal_user_id = Column(String(64), ForeignKey("users.id"), primary_key=True)
    provider_user_id = Column(String, nullable=False)
    provider_secret = Column(EncryptedString, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow)
    rotated_at = Column(UTCDateTime, nullable=True)

    user = relationship("User", back_populates="provider_identity")
