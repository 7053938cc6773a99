"""Links bank and credit accounts from a bank-provider enrollment."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.orm import Session

from integrations.aggregator_protocol import BankAccount, BankProvider
from integrations.exceptions import ProviderAuthError, ProviderError
from models import ConnectedAccount, User
from models.utils import utcnow
from services.connection_limits import count_connections, plan_for_user
from services.dashboard_service import map_bank_balance
from services.encryption import hash_for_logging
from services.errors import ErrorCode, FlintError, normalize_provider_error

logger = logging.getLogger(__name__)


@dataclass
class BankLinkResult:
    accounts_saved: int = 0
    accounts_rejected: int = 0
    duplicates: int = 0
    limit: int | None = None
    current: int = 0
    message: str = ""
    saved_account_ids: list[str] = field(default_factory=list)

    def counters(self) -> dict:
        return {
            "accountsSaved": self.accounts_saved,
            "accountsRejected": self.accounts_rejected,
            "duplicates": self.duplicates,
            "limit": self.limit,
            "current": self.current,
        }


def stored_account_type(account: BankAccount) -> str:
    """Stored account type: credit lines and credit cards are "credit"."""
    if account.type == "credit" or account.subtype == "credit_card":
        return "credit"
    return "bank"


def bank_display_name(account: BankAccount) -> str:
    """``"{institution} - {name} (****{last4})"``, without the mask when unknown."""
    name = f"{account.institution_name} - {account.name}"
    if account.last_four:
        name += f" (****{account.last_four})"
    return name


def _summary(saved: int, rejected: int, duplicates: int, limit: int | None) -> str:
    parts = [f"Connected {saved} account{'s' if saved != 1 else ''}"]
    if duplicates:
        parts.append(f"{duplicates} already linked")
    if rejected:
        parts.append(
            f"{rejected} not added: your plan allows {limit} connection{'s' if limit != 1 else ''}"
        )
    return ". ".join(parts) + "."


class BankLinkService:
    """Persists newly linked bank accounts within the user's connection limit."""

    def __init__(self, bank: BankProvider):
        self.bank = bank

    def link_accounts(
        self,
        db: Session,
        user: User,
        access_token: str,
        enrollment_id: str | None = None,
    ) -> BankLinkResult:
        """Link every account of an enrollment that fits the user's limit.

        Does not commit.

        Raises:
            FlintError: CONNECTION_LIMIT (with the counters in ``details``)
                when no new account fits; VALIDATION_ERROR when the token
                is rejected; SERVICE_UNAVAILABLE on provider outages.
        """
        try:
            provider_accounts = self.bank.list_accounts(access_token)
        except ProviderAuthError as e:
            raise FlintError(
                ErrorCode.VALIDATION_ERROR,
                "The bank authorization is invalid or has expired. Please connect again.",
            ) from e
        except ProviderError as e:
            raise normalize_provider_error(e, action="reach your bank") from e

        existing_ids = [
            row.external_account_id
            for row in db.query(ConnectedAccount)
            .filter(ConnectedAccount.user_id == user.id, ConnectedAccount.provider == "bank")
            .all()
        ]
        plan = plan_for_user(db, user, [a.id for a in provider_accounts], existing_ids)
        by_id = {a.id: a for a in provider_accounts}

        result = BankLinkResult(
            accounts_rejected=len(plan.rejected),
            duplicates=len(plan.duplicates),
            limit=plan.limit,
        )

        if not plan.accepted and plan.rejected:
            result.current = plan.current
            result.message = (
                f"Connection limit reached ({plan.current}/{plan.limit}). "
                "Upgrade your plan to link more accounts."
            )
            raise FlintError(ErrorCode.CONNECTION_LIMIT, result.message, details=result.counters())

        now = utcnow()
        for account_id in plan.accepted:
            account = by_id[account_id]
            account_type = stored_account_type(account)
            balance = self._initial_balance(access_token, account_id, account_type)
            row = ConnectedAccount(
                user_id=user.id,
                provider="bank",
                external_account_id=account_id,
                access_token=access_token,
                enrollment_id=enrollment_id or account.enrollment_id,
                institution_name=account.institution_name,
                account_name=account.name,
                display_name=bank_display_name(account),
                account_type=account_type,
                account_subtype=account.subtype,
                mask=account.last_four,
                currency=account.currency,
                balance=balance if balance is not None else Decimal("0"),
                status="connected",
                last_synced=now if balance is not None else None,
            )
            db.add(row)
            db.flush()
            result.saved_account_ids.append(row.id)

        result.accounts_saved = len(plan.accepted)
        result.current = count_connections(db, user.id)
        result.message = _summary(
            result.accounts_saved, result.accounts_rejected, result.duplicates, plan.limit
        )
        logger.info(
            "Bank link for user %s: %d saved, %d rejected, %d duplicates",
            hash_for_logging(user.id),
            result.accounts_saved,
            result.accounts_rejected,
            result.duplicates,
        )
        return result

    def _initial_balance(self, access_token: str, account_id: str, account_type: str) -> Decimal | None:
        try:
            balance = self.bank.get_balances(access_token, account_id)
        except ProviderError as e:
            logger.warning(
                "Initial balance fetch failed for bank account (%s); saving without balance",
                type(e).__name__,
            )
            return None
        signed, _, _ = map_bank_balance(account_type, balance)
        return signed
