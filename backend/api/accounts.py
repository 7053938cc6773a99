"""Account disconnect endpoint."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.deps import get_aggregator, get_current_user, require_csrf
from database import get_db
from integrations.aggregator_protocol import AggregatorProvider
from models import User
from schemas.common import MessageResponse
from services.disconnect_service import DisconnectService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


@router.delete(
    "/{provider}/{account_id}",
    response_model=MessageResponse,
    dependencies=[Depends(require_csrf)],
)
def disconnect_account(
    provider: str,
    account_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    aggregator: AggregatorProvider = Depends(get_aggregator),
):
    """Disconnect a bank, crypto or brokerage account."""
    DisconnectService(aggregator).disconnect(db, user, provider, account_id)
    db.commit()
    return MessageResponse(message="Account disconnected.")
