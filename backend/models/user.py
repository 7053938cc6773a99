"""User model - the internal account that owns every provider link."""

from sqlalchemy import Boolean, Column, String
from sqlalchemy.orm import relationship

from database import Base
from models.types import UTCDateTime
from models.utils import utcnow


class User(Base):
    """An application user.

    Authentication lives upstream; this row only carries what the
    aggregation core needs: the subscription tier and the admin flag that
    drive the connection limit.
    """

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String, unique=True, nullable=True)
    subscription_tier = Column(String, nullable=False, default="free")  # free | basic | pro | premium
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime, default=utcnow)

    # Relationships
    provider_identity = relationship(
        "ProviderIdentity", back_populates="user", uselist=False
    )
    brokerage_connections = relationship("BrokerageConnection", back_populates="user")
    connected_accounts = relationship("ConnectedAccount", back_populates="user")
