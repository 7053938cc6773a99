"""Dashboard API endpoint."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.deps import get_aggregator, get_bank_provider, get_current_user
from database import get_db
from integrations.aggregator_protocol import AggregatorProvider, BankProvider
from models import User
from schemas.dashboard import DashboardResponse
from services.dashboard_service import DashboardService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("", response_model=DashboardResponse)
def get_dashboard(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    bank: BankProvider = Depends(get_bank_provider),
    aggregator: AggregatorProvider = Depends(get_aggregator),
):
    """Unified bank, brokerage and crypto accounts with totals.

    Provider failures degrade the view instead of failing the request;
    refreshed bank balances are written back as the fallback cache.
    """
    view = DashboardService(bank, aggregator).build_dashboard_view(db, user)
    db.commit()
    return DashboardResponse.model_validate(view)
