"""Spending transactions and detected subscriptions."""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps import get_bank_provider, get_current_user
from database import get_db
from integrations.aggregator_protocol import BankProvider
from models import User
from schemas.subscription import (
    SubscriptionResponse,
    SubscriptionsListResponse,
    TransactionResponse,
    TransactionsListResponse,
)
from services.subscription_detector import detect_subscriptions, total_monthly_spend
from services.transaction_service import DEFAULT_TRANSACTION_COUNT, TransactionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["transactions"])


@router.get("/transactions", response_model=TransactionsListResponse)
def list_transactions(
    count: int = Query(DEFAULT_TRANSACTION_COUNT, ge=1, le=1000),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    bank: BankProvider = Depends(get_bank_provider),
):
    """Outgoing bank transactions, newest first, as positive amounts."""
    spending = TransactionService(bank).list_spending(db, user.id, count=count)
    return TransactionsListResponse(
        transactions=[TransactionResponse.model_validate(t) for t in spending]
    )


@router.get("/subscriptions", response_model=SubscriptionsListResponse)
def list_subscriptions(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    bank: BankProvider = Depends(get_bank_provider),
):
    """Recurring payments detected in the user's spending."""
    spending = TransactionService(bank).list_spending(db, user.id)
    subscriptions = detect_subscriptions(spending)
    return SubscriptionsListResponse(
        subscriptions=[SubscriptionResponse.model_validate(s) for s in subscriptions],
        total_monthly_spend=total_monthly_spend(subscriptions),
    )
