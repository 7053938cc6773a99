"""Pydantic schemas for spending transactions and detected subscriptions."""

from datetime import date
from decimal import Decimal
from typing import Optional

from schemas.common import CamelModel
from services.subscription_detector import Frequency


class TransactionResponse(CamelModel):
    id: str
    date: date
    amount: Decimal
    description: str
    merchant_name: Optional[str] = None
    account_name: Optional[str] = None


class TransactionsListResponse(CamelModel):
    transactions: list[TransactionResponse]


class SubscriptionResponse(CamelModel):
    id: str
    merchant_name: str
    amount: Decimal
    monthly_amount: Decimal
    frequency: Frequency
    next_billing_date: date
    last_transaction_date: date
    confidence: float
    category: str
    account_name: Optional[str] = None
    transactions: list[TransactionResponse]


class SubscriptionsListResponse(CamelModel):
    subscriptions: list[SubscriptionResponse]
    total_monthly_spend: Decimal
