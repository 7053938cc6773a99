"""Pydantic schemas for brokerage holdings."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from schemas.common import CamelModel


class HoldingResponse(CamelModel):
    id: str
    account_id: str
    symbol: str
    name: Optional[str] = None
    quantity: Decimal
    average_cost: Decimal
    current_price: Decimal
    current_value: Decimal
    profit_loss: Decimal
    currency: str
    updated_at: Optional[datetime] = None


class HoldingsListResponse(CamelModel):
    holdings: list[HoldingResponse]
    total_value: Decimal


class ActivityResponse(CamelModel):
    id: str
    account_id: str
    date: datetime
    type: str
    symbol: Optional[str] = None
    description: Optional[str] = None
    units: Optional[Decimal] = None
    price: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None


class ActivitiesListResponse(CamelModel):
    activities: list[ActivityResponse]
