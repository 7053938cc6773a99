"""Pydantic schemas for the unified dashboard."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from schemas.common import CamelModel


class UnifiedAccountResponse(CamelModel):
    """A bank, brokerage or crypto account in the unified shape.

    ``balance_amount`` is signed: credit debt is negative and also shown
    as a positive ``amount_owed``.
    """

    id: str
    provider: str
    account_type: str
    display_name: str
    institution_name: str
    balance_amount: Decimal
    currency: str
    cash: Optional[Decimal] = None
    holdings_value: Optional[Decimal] = None
    buying_power: Optional[Decimal] = None
    available_credit: Optional[Decimal] = None
    amount_owed: Optional[Decimal] = None
    needs_reconnection: bool = False
    last_updated: Optional[datetime] = None
    percent_of_total: float = 0.0


class DashboardTotalsResponse(CamelModel):
    total_balance: Decimal
    total_assets: Decimal
    bank_balance: Decimal
    investment_balance: Decimal
    crypto_value: Decimal
    total_debt: Decimal


class ConnectionStatusResponse(CamelModel):
    has_accounts: bool
    snap_trade_error: Optional[str] = None
    message: Optional[str] = None


class DashboardResponse(CamelModel):
    accounts: list[UnifiedAccountResponse]
    totals: DashboardTotalsResponse
    connection_status: ConnectionStatusResponse
    needs_connection: bool
    subscription_tier: str
    is_admin: bool
