"""Bank account linking endpoint."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.deps import get_bank_provider, get_current_user, require_csrf
from database import get_db
from integrations.aggregator_protocol import BankProvider
from models import User
from schemas.banking import BankLinkRequest, BankLinkResponse
from services.bank_link_service import BankLinkService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/banking", tags=["banking"])


@router.post("/link", response_model=BankLinkResponse, dependencies=[Depends(require_csrf)])
def link_bank_accounts(
    body: BankLinkRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    bank: BankProvider = Depends(get_bank_provider),
):
    """Link the accounts behind a bank enrollment, up to the tier limit.

    Responds 403 ``CONNECTION_LIMIT`` with the same counters when none of
    the new accounts fits.
    """
    result = BankLinkService(bank).link_accounts(
        db, user, body.access_token, enrollment_id=body.enrollment_id
    )
    db.commit()
    return BankLinkResponse.model_validate(result)
