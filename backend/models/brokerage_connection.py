"""BrokerageConnection model - one brokerage authorization at the aggregator."""

from sqlalchemy import Boolean, Column, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.types import UTCDateTime
from models.utils import generate_uuid, utcnow


class BrokerageConnection(Base):
    """A brokerage authorization mirrored from the aggregator.

    Upserted by the connection synchronizer keyed on
    (user_id, provider_authorization_id).
    """

    __tablename__ = "brokerage_connections"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "provider_authorization_id", name="uix_user_authorization"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    provider_authorization_id = Column(String, nullable=False)
    institution_name = Column(String, nullable=False, default="Unknown")
    disabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow)
    last_sync_at = Column(UTCDateTime, nullable=True)

    user = relationship("User", back_populates="brokerage_connections")
