"""Builds the unified dashboard view across bank, brokerage and crypto accounts.

Bank and brokerage data are fetched concurrently in independent failure
domains: whatever one provider does, the other's accounts still appear.
Database access stays on the calling thread; worker threads only talk to
providers and work on plain snapshots.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.orm import Session

from integrations.aggregator_protocol import (
    AggregatorIdentity,
    AggregatorProvider,
    BankBalance,
    BankProvider,
    BrokerageAccount,
)
from integrations.exceptions import ProviderAuthError, ProviderError
from models import ConnectedAccount, User
from models.utils import utcnow
from services.credential_store import CredentialStore
from services.encryption import hash_for_logging

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Values reported in connection_status.snap_trade_error
NOT_CONNECTED = "not_connected"
AUTH_FAILED = "auth_failed"
FETCH_FAILED = "fetch_failed"

CONNECT_MESSAGE = "Connect your accounts to see your portfolio"


@dataclass
class UnifiedAccount:
    """Provider-agnostic account as shown on the dashboard.

    ``balance_amount`` is signed: credit debt is negative. ``amount_owed``
    shows the same debt as a positive number.
    """

    id: str
    provider: str  # "bank" | "brokerage" | "crypto"
    account_type: str  # "bank" | "credit" | "investment"
    display_name: str
    institution_name: str
    balance_amount: Decimal
    currency: str = "USD"
    cash: Decimal | None = None
    holdings_value: Decimal | None = None
    buying_power: Decimal | None = None
    available_credit: Decimal | None = None
    amount_owed: Decimal | None = None
    needs_reconnection: bool = False
    last_updated: datetime | None = None
    percent_of_total: float = 0.0

    @property
    def is_asset(self) -> bool:
        return self.account_type != "credit"


@dataclass
class DashboardTotals:
    total_balance: Decimal = ZERO
    total_assets: Decimal = ZERO
    bank_balance: Decimal = ZERO
    investment_balance: Decimal = ZERO
    crypto_value: Decimal = ZERO
    total_debt: Decimal = ZERO


@dataclass
class ConnectionStatus:
    has_accounts: bool = False
    snap_trade_error: str | None = None
    message: str | None = None


@dataclass
class DashboardView:
    accounts: list[UnifiedAccount] = field(default_factory=list)
    totals: DashboardTotals = field(default_factory=DashboardTotals)
    connection_status: ConnectionStatus = field(default_factory=ConnectionStatus)
    needs_connection: bool = True
    subscription_tier: str = "free"
    is_admin: bool = False


@dataclass
class _BankRef:
    """Snapshot of a ConnectedAccount row, safe to hand to a worker thread."""

    id: str
    external_account_id: str
    access_token: str | None
    account_type: str
    display_name: str
    institution_name: str
    currency: str
    stored_balance: Decimal
    last_synced: datetime | None


@dataclass
class _BankRefresh:
    """A fresh balance to write back to the ConnectedAccount cache."""

    account_id: str
    balance: Decimal | None
    needs_reconnection: bool
    closed: bool = False


@dataclass
class _BrokerageOutcome:
    accounts: list[UnifiedAccount] = field(default_factory=list)
    error: str | None = None


def map_bank_balance(
    account_type: str, balance: BankBalance
) -> tuple[Decimal, Decimal | None, Decimal | None]:
    """Convert bank-provider balances to ``(signed_balance, amount_owed, available_credit)``.

    For credit accounts the provider's ledger balance is the amount owed; it
    is negated for net worth, so an overpaid card (negative ledger) counts as
    an asset and reports no amount owed. Other accounts prefer the available
    balance over the ledger balance.
    """
    if account_type == "credit":
        ledger = balance.ledger if balance.ledger is not None else ZERO
        return -ledger, (ledger if ledger > 0 else None), balance.available
    if balance.available is not None:
        return balance.available, None, None
    return (balance.ledger if balance.ledger is not None else ZERO), None, None


def normalize_brokerage_name(account: BrokerageAccount) -> str:
    """Replace empty or institution-default account names with "{institution} {type}"."""
    name = (account.name or "").strip()
    if not name or name.lower() == "default":
        account_type = (account.account_type or "Account").strip() or "Account"
        return f"{account.institution_name} {account_type}"
    return name


def percent_of_total(balance: Decimal, total_assets: Decimal) -> float:
    """Share of total assets, rounded half-up to one decimal place."""
    if total_assets <= 0:
        return 0.0
    percent = (balance / total_assets * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    return float(percent)


def empty_view(message: str = CONNECT_MESSAGE, snap_trade_error: str | None = FETCH_FAILED) -> DashboardView:
    """Renderable zero-value view used when the dashboard cannot be built."""
    return DashboardView(
        connection_status=ConnectionStatus(
            has_accounts=False,
            snap_trade_error=snap_trade_error,
            message=message,
        ),
    )


class DashboardService:
    """Merges provider data into one :class:`DashboardView`. Does not commit."""

    def __init__(
        self,
        bank: BankProvider,
        aggregator: AggregatorProvider,
        store: CredentialStore | None = None,
    ):
        self.bank = bank
        self.aggregator = aggregator
        self.store = store or CredentialStore()

    def build_dashboard_view(self, db: Session, user: User) -> DashboardView:
        """Build the dashboard for ``user``. Never raises."""
        try:
            return self._build(db, user)
        except Exception:
            logger.exception("Dashboard build failed for user %s", hash_for_logging(user.id))
            db.rollback()
            view = empty_view("We couldn't load your accounts right now. Please try again.")
            view.subscription_tier = user.subscription_tier or "free"
            view.is_admin = bool(user.is_admin)
            return view

    def _build(self, db: Session, user: User) -> DashboardView:
        rows = (
            db.query(ConnectedAccount)
            .filter(ConnectedAccount.user_id == user.id)
            .order_by(ConnectedAccount.created_at, ConnectedAccount.id)
            .all()
        )
        bank_refs = [
            _BankRef(
                id=row.id,
                external_account_id=row.external_account_id,
                access_token=row.access_token,
                account_type=row.account_type,
                display_name=row.display_name,
                institution_name=row.institution_name,
                currency=row.currency or "USD",
                stored_balance=Decimal(row.balance or 0),
                last_synced=row.last_synced,
            )
            for row in rows
            if row.provider == "bank"
        ]
        crypto_rows = [row for row in rows if row.provider == "crypto"]
        identity = self.store.get_identity(db, user.id)

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="dashboard") as pool:
            bank_future = pool.submit(self._fetch_bank_accounts, bank_refs)
            brokerage_future = pool.submit(self._fetch_brokerage_accounts, user.id, identity)
            bank_accounts, refreshes = bank_future.result()
            brokerage = brokerage_future.result()

        self._persist_bank_cache(db, refreshes)

        crypto_accounts = [
            UnifiedAccount(
                id=row.id,
                provider="crypto",
                account_type="investment",
                display_name=row.display_name,
                institution_name=row.institution_name,
                balance_amount=Decimal(row.balance or 0),
                currency=row.currency or "USD",
                last_updated=row.last_synced,
            )
            for row in crypto_rows
        ]

        accounts = bank_accounts + brokerage.accounts + crypto_accounts
        totals = self._totals(bank_accounts, brokerage.accounts, crypto_accounts)
        for account in accounts:
            account.percent_of_total = (
                percent_of_total(account.balance_amount, totals.total_assets)
                if account.is_asset
                else 0.0
            )

        has_accounts = bool(accounts)
        message = None
        if not has_accounts:
            message = CONNECT_MESSAGE
        elif brokerage.error == AUTH_FAILED:
            message = "Your brokerage connection needs to be re-authorized."
        elif brokerage.error == FETCH_FAILED:
            message = "Brokerage data is temporarily unavailable."

        return DashboardView(
            accounts=accounts,
            totals=totals,
            connection_status=ConnectionStatus(
                has_accounts=has_accounts,
                snap_trade_error=brokerage.error,
                message=message,
            ),
            needs_connection=not has_accounts,
            subscription_tier=user.subscription_tier or "free",
            is_admin=bool(user.is_admin),
        )

    # ------------------------------------------------------------------
    # Bank side (worker thread)
    # ------------------------------------------------------------------

    def _fetch_bank_accounts(
        self, refs: list[_BankRef]
    ) -> tuple[list[UnifiedAccount], list[_BankRefresh]]:
        accounts = []
        refreshes = []
        for ref in refs:
            try:
                account, refresh = self._fetch_one_bank_account(ref)
            except Exception:
                logger.exception("Unexpected error mapping bank account %s", ref.id)
                account, refresh = self._stored_bank_account(ref, needs_reconnection=False), None
            accounts.append(account)
            if refresh is not None:
                refreshes.append(refresh)
        return accounts, refreshes

    def _fetch_one_bank_account(
        self, ref: _BankRef
    ) -> tuple[UnifiedAccount, _BankRefresh | None]:
        if not ref.access_token:
            return (
                self._stored_bank_account(ref, needs_reconnection=True),
                _BankRefresh(ref.id, None, needs_reconnection=True),
            )
        try:
            balance = self.bank.get_balances(ref.access_token, ref.external_account_id)
            live = self.bank.get_account(ref.access_token, ref.external_account_id)
        except ProviderAuthError:
            logger.info("Bank grant expired for account %s, using stored balance", ref.id)
            return (
                self._stored_bank_account(ref, needs_reconnection=True),
                _BankRefresh(ref.id, None, needs_reconnection=True),
            )
        except ProviderError as e:
            logger.warning(
                "Bank account fetch failed for account %s (%s), using stored balance",
                ref.id,
                type(e).__name__,
            )
            return self._stored_bank_account(ref, needs_reconnection=False), None

        signed, owed, available_credit = map_bank_balance(ref.account_type, balance)
        account = UnifiedAccount(
            id=ref.id,
            provider="bank",
            account_type="credit" if ref.account_type == "credit" else "bank",
            display_name=ref.display_name,
            institution_name=ref.institution_name,
            balance_amount=signed,
            currency=ref.currency,
            available_credit=available_credit,
            amount_owed=owed,
            last_updated=utcnow(),
        )
        return account, _BankRefresh(
            ref.id, signed, needs_reconnection=False, closed=live.status == "closed"
        )

    @staticmethod
    def _stored_bank_account(ref: _BankRef, needs_reconnection: bool) -> UnifiedAccount:
        is_credit = ref.account_type == "credit"
        return UnifiedAccount(
            id=ref.id,
            provider="bank",
            account_type="credit" if is_credit else "bank",
            display_name=ref.display_name,
            institution_name=ref.institution_name,
            balance_amount=ref.stored_balance,
            currency=ref.currency,
            amount_owed=-ref.stored_balance if is_credit and ref.stored_balance < 0 else None,
            needs_reconnection=needs_reconnection,
            last_updated=ref.last_synced,
        )

    def _persist_bank_cache(self, db: Session, refreshes: list[_BankRefresh]) -> None:
        if not refreshes:
            return
        now = utcnow()
        for refresh in refreshes:
            row = db.get(ConnectedAccount, refresh.account_id)
            if row is None:
                continue
            if refresh.balance is not None:
                row.balance = refresh.balance
                row.last_synced = now
            if refresh.needs_reconnection:
                row.status = "needs_reconnection"
            else:
                row.status = "closed" if refresh.closed else "connected"
        db.flush()

    # ------------------------------------------------------------------
    # Brokerage side (worker thread)
    # ------------------------------------------------------------------

    def _fetch_brokerage_accounts(
        self, user_id: str, identity: AggregatorIdentity | None
    ) -> _BrokerageOutcome:
        if identity is None:
            return _BrokerageOutcome(error=NOT_CONNECTED)
        try:
            raw_accounts = self.aggregator.list_accounts(
                identity.provider_user_id, identity.provider_secret
            )
        except ProviderAuthError:
            # Keep the stored identity: the failure may be transient.
            logger.warning(
                "Brokerage auth failed for user %s; keeping identity for reconnection",
                hash_for_logging(user_id),
            )
            placeholder = UnifiedAccount(
                id=f"brokerage-disconnected-{user_id}",
                provider="brokerage",
                account_type="investment",
                display_name="Investment Account (Disconnected)",
                institution_name="SnapTrade",
                balance_amount=ZERO,
                needs_reconnection=True,
                last_updated=utcnow(),
            )
            return _BrokerageOutcome(accounts=[placeholder], error=AUTH_FAILED)
        except Exception as e:
            logger.warning(
                "Brokerage fetch failed for user %s: %s",
                hash_for_logging(user_id),
                type(e).__name__,
            )
            return _BrokerageOutcome(error=FETCH_FAILED)

        now = utcnow()
        accounts = []
        for account in raw_accounts:
            total = account.total_value or ZERO
            cash = account.cash or ZERO
            accounts.append(
                UnifiedAccount(
                    id=account.id,
                    provider="brokerage",
                    account_type="investment",
                    display_name=normalize_brokerage_name(account),
                    institution_name=account.institution_name,
                    balance_amount=total,
                    currency=account.currency,
                    cash=cash,
                    holdings_value=total - cash,
                    buying_power=account.buying_power if account.buying_power is not None else cash,
                    last_updated=now,
                )
            )
        return _BrokerageOutcome(accounts=accounts)

    @staticmethod
    def _totals(
        bank_accounts: list[UnifiedAccount],
        brokerage_accounts: list[UnifiedAccount],
        crypto_accounts: list[UnifiedAccount],
    ) -> DashboardTotals:
        bank_assets = sum((a.balance_amount for a in bank_accounts if a.is_asset), ZERO)
        debt_signed = sum((a.balance_amount for a in bank_accounts if not a.is_asset), ZERO)
        investment = sum((a.balance_amount for a in brokerage_accounts), ZERO)
        crypto = sum((a.balance_amount for a in crypto_accounts), ZERO)
        total_assets = bank_assets + investment + crypto
        return DashboardTotals(
            total_balance=total_assets + debt_signed,
            total_assets=total_assets,
            bank_balance=bank_assets,
            investment_balance=investment,
            crypto_value=crypto,
            total_debt=-debt_signed,
        )
