"""Provider protocol definitions for the bank provider and brokerage aggregator.

The services depend on these protocols, never on a concrete SDK, so tests
can substitute in-memory fakes.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Protocol


@dataclass
class AggregatorIdentity:
    """A user registration at the brokerage aggregator."""

    provider_user_id: str
    provider_secret: str = field(repr=False)


@dataclass
class AggregatorAuthorization:
    """One brokerage authorization (a login at a brokerage) after normalization."""

    authorization_id: str
    institution_name: str
    disabled: bool = False


@dataclass
class BrokerageAccount:
    """Normalized brokerage account data from the aggregator."""

    id: str  # Aggregator's account ID
    name: str  # Account name as the brokerage reports it
    institution_name: str
    account_type: str | None = None  # e.g. "Individual", "Roth IRA"
    total_value: Decimal = Decimal("0")
    cash: Decimal = Decimal("0")
    buying_power: Decimal | None = None
    currency: str = "USD"
    authorization_id: str | None = None


@dataclass
class BrokeragePosition:
    """Normalized position data from the aggregator."""

    account_id: str
    symbol: str
    units: Decimal
    price: Decimal
    average_purchase_price: Decimal | None = None
    name: str | None = None
    currency: str = "USD"


@dataclass
class BrokerageActivity:
    """A trade, dividend or transfer reported by the aggregator."""

    account_id: str
    external_id: str
    activity_date: datetime
    type: str  # lower-cased, e.g. "buy", "dividend"
    amount: Decimal | None = None
    description: str | None = None
    symbol: str | None = None
    units: Decimal | None = None
    price: Decimal | None = None
    currency: str | None = None


@dataclass
class BankAccount:
    """Account metadata from the bank provider."""

    id: str
    name: str
    institution_name: str
    type: str  # "depository" | "credit"
    subtype: str | None = None
    last_four: str | None = None
    currency: str = "USD"
    enrollment_id: str | None = None
    status: str | None = None


@dataclass
class BankBalance:
    """Balances for one bank account.

    For credit accounts ``ledger`` is the amount owed; negative when overpaid.
    """

    account_id: str
    ledger: Decimal | None = None
    available: Decimal | None = None


@dataclass
class BankTransaction:
    """A transaction from the bank provider. Outflows have negative amounts."""

    id: str
    account_id: str
    date: date
    amount: Decimal
    description: str
    merchant_name: str | None = None
    category: str | None = None
    status: str | None = None


class BankProvider(Protocol):
    """Interface for the bank provider. All calls authenticate with a per-enrollment token."""

    def list_accounts(self, access_token: str) -> list[BankAccount]: ...

    def get_account(self, access_token: str, account_id: str) -> BankAccount: ...

    def get_balances(self, access_token: str, account_id: str) -> BankBalance: ...

    def get_transactions(
        self, access_token: str, account_id: str, count: int | None = None
    ) -> list[BankTransaction]: ...


class AggregatorProvider(Protocol):
    """Interface for the brokerage aggregator.

    ``list_authorizations`` returns raw records; callers normalize them with
    :func:`integrations.snaptrade_normalizers.normalize_authorizations`
    because the id field name varies between API versions.
    """

    def is_configured(self) -> bool: ...

    def register_identity(self, internal_user_id: str) -> AggregatorIdentity: ...

    def delete_identity(self, provider_user_id: str) -> None: ...

    def reset_secret(self, provider_user_id: str, provider_secret: str) -> str: ...

    def list_accounts(
        self, provider_user_id: str, provider_secret: str
    ) -> list[BrokerageAccount]: ...

    def list_authorizations(
        self, provider_user_id: str, provider_secret: str
    ) -> list[dict[str, Any]]: ...

    def get_positions(
        self, provider_user_id: str, provider_secret: str, account_id: str
    ) -> list[BrokeragePosition]: ...

    def list_activities(
        self,
        provider_user_id: str,
        provider_secret: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[BrokerageActivity]: ...

    def login_url(
        self,
        provider_user_id: str,
        provider_secret: str,
        reconnect_authorization_id: str | None = None,
    ) -> str: ...

    def remove_authorization(
        self, provider_user_id: str, provider_secret: str, authorization_id: str
    ) -> None: ...
