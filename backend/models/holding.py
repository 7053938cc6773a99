"""Holding model - a position held in a brokerage account."""

from decimal import Decimal

from sqlalchemy import Column, ForeignKey, Numeric, String, UniqueConstraint

from database import Base
from models.types import UTCDateTime
from models.utils import generate_uuid, utcnow


class Holding(Base):
    """A position in one of the user's brokerage accounts.

    ``current_value`` and ``profit_loss`` are derived columns; set prices
    through :meth:`apply_position` so they are always recomputed.
    """

    __tablename__ = "holdings"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "account_id", "symbol", name="uix_holding_account_symbol"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    account_id = Column(String, nullable=False, index=True)  # Aggregator account id
    provider_authorization_id = Column(String, nullable=True)
    symbol = Column(String, nullable=False)
    name = Column(String, nullable=True)
    quantity = Column(Numeric(18, 8), nullable=False, default=Decimal("0"))
    average_cost = Column(Numeric(18, 4), nullable=False, default=Decimal("0"))
    current_price = Column(Numeric(18, 4), nullable=False, default=Decimal("0"))
    current_value = Column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    profit_loss = Column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    currency = Column(String, nullable=False, default="USD")
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    def apply_position(
        self, quantity: Decimal, current_price: Decimal, average_cost: Decimal
    ) -> None:
        """Set the raw position fields and recompute the derived ones."""
        self.quantity = quantity
        self.current_price = current_price
        self.average_cost = average_cost
        self.current_value = quantity * current_price
        self.profit_loss = (current_price - average_cost) * quantity
