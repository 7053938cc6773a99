"""Outgoing bank transactions for the linked bank and credit accounts."""

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from integrations.aggregator_protocol import BankProvider
from integrations.exceptions import ProviderError
from models import ConnectedAccount
from services.subscription_detector import SpendTransaction

logger = logging.getLogger(__name__)

DEFAULT_TRANSACTION_COUNT = 500


@dataclass
class _AccountRef:
    id: str
    external_account_id: str
    access_token: str
    display_name: str


class TransactionService:
    def __init__(self, bank: BankProvider):
        self.bank = bank

    def list_spending(
        self, db: Session, user_id: str, count: int = DEFAULT_TRANSACTION_COUNT
    ) -> list[SpendTransaction]:
        """Outgoing transactions as positive spend, newest first.

        Accounts that fail to load are logged and skipped.
        """
        refs = [
            _AccountRef(row.id, row.external_account_id, row.access_token, row.display_name)
            for row in db.query(ConnectedAccount)
            .filter(ConnectedAccount.user_id == user_id, ConnectedAccount.provider == "bank")
            .order_by(ConnectedAccount.created_at)
            .all()
            if row.access_token
        ]

        seen: set[str] = set()
        spending: list[SpendTransaction] = []
        for ref in refs:
            try:
                transactions = self.bank.get_transactions(
                    ref.access_token, ref.external_account_id, count=count
                )
            except ProviderError as e:
                logger.warning(
                    "Transaction fetch failed for account %s: %s", ref.id, type(e).__name__
                )
                continue
            for txn in transactions:
                if txn.amount >= 0 or txn.id in seen:
                    continue
                seen.add(txn.id)
                spending.append(
                    SpendTransaction(
                        id=txn.id,
                        date=txn.date,
                        amount=-txn.amount,
                        description=txn.description,
                        merchant_name=txn.merchant_name,
                        account_name=ref.display_name,
                    )
                )

        spending.sort(key=lambda t: (t.date, t.id), reverse=True)
        return spending
