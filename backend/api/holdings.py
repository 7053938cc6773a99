"""Brokerage holdings endpoints."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps import get_aggregator, get_current_user, require_csrf
from database import get_db
from integrations.aggregator_protocol import AggregatorProvider
from models import Holding, User
from schemas.holding import (
    ActivitiesListResponse,
    ActivityResponse,
    HoldingResponse,
    HoldingsListResponse,
)
from services.holdings_service import HoldingsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/holdings", tags=["holdings"])


def _list_response(holdings: list[Holding]) -> HoldingsListResponse:
    return HoldingsListResponse(
        holdings=[HoldingResponse.model_validate(h) for h in holdings],
        total_value=sum((Decimal(h.current_value) for h in holdings), Decimal("0")),
    )


@router.get("", response_model=HoldingsListResponse)
def list_holdings(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    aggregator: AggregatorProvider = Depends(get_aggregator),
):
    """Cached positions across all brokerage accounts."""
    return _list_response(HoldingsService(aggregator).list_holdings(db, user.id))


@router.post("/refresh", response_model=HoldingsListResponse, dependencies=[Depends(require_csrf)])
def refresh_holdings(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    aggregator: AggregatorProvider = Depends(get_aggregator),
):
    """Fetch fresh positions from the aggregator and replace the cache."""
    holdings = HoldingsService(aggregator).refresh_holdings(db, user.id)
    db.commit()
    return _list_response(holdings)


@router.get("/activities", response_model=ActivitiesListResponse)
def list_activities(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    aggregator: AggregatorProvider = Depends(get_aggregator),
):
    """Brokerage activity straight from the aggregator; defaults to the last 90 days."""
    activities = HoldingsService(aggregator).list_activities(db, user.id, start_date, end_date)
    return ActivitiesListResponse(
        activities=[
            ActivityResponse(
                id=a.external_id,
                account_id=a.account_id,
                date=a.activity_date,
                type=a.type,
                symbol=a.symbol,
                description=a.description,
                units=a.units,
                price=a.price,
                amount=a.amount,
                currency=a.currency,
            )
            for a in activities
        ]
    )
