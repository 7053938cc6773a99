"""Normalizers for raw SnapTrade payloads.

Different SnapTrade endpoints and API versions expose the same value under
different field names. Each normalizer tries an explicit, ordered alias list
so the business logic never has to guess.
"""

import logging
from decimal import Decimal
from typing import Any, Iterable

from integrations.aggregator_protocol import (
    AggregatorAuthorization,
    BrokerageAccount,
    BrokerageActivity,
    BrokeragePosition,
)
from integrations.parsing_utils import first_present, get_field, parse_decimal, parse_iso_datetime

logger = logging.getLogger(__name__)

# Ordered: the authorization list endpoint uses "id"; account and webhook
# payloads use the others.
AUTHORIZATION_ID_ALIASES: tuple[str, ...] = (
    "id",
    "authorization_id",
    "brokerage_authorization_id",
    "brokerageAuthorizationId",
    "authorizationId",
    "brokerage_authorization",
)

INSTITUTION_NAME_ALIASES: tuple[str, ...] = (
    "institution_name",
    "brokerage_name",
    "name",
)

PRICE_ALIASES: tuple[str, ...] = ("price", "current_price", "last_price")

DISABLED_ALIASES: tuple[str, ...] = ("disabled", "is_disabled")


def extract_authorization_id(record: Any) -> str | None:
    """Return the authorization id of a raw record, or None if no alias resolves.

    ``brokerage_authorization`` may be either the id string itself or a
    nested object carrying an ``id``.
    """
    found = first_present(record, AUTHORIZATION_ID_ALIASES)
    if found is None:
        return None
    alias, value = found
    if isinstance(value, (str, int)):
        return str(value)
    nested = get_field(value, "id")
    if nested:
        return str(nested)
    logger.debug("Alias %s present but not resolvable to an id", alias)
    return None


def extract_institution_name(record: Any) -> str:
    """Institution name from a raw authorization or account record."""
    brokerage = get_field(record, "brokerage")
    if isinstance(brokerage, str) and brokerage:
        return brokerage
    if brokerage is not None:
        name = get_field(brokerage, "display_name") or get_field(brokerage, "name")
        if name:
            return str(name)
    found = first_present(record, INSTITUTION_NAME_ALIASES)
    if found is not None:
        return str(found[1])
    return "Unknown"


def normalize_authorization(record: Any) -> AggregatorAuthorization | None:
    """Map one raw authorization record; None if it has no usable id."""
    authorization_id = extract_authorization_id(record)
    if not authorization_id:
        return None
    found = first_present(record, DISABLED_ALIASES)
    disabled = bool(found[1]) if found else False
    return AggregatorAuthorization(
        authorization_id=authorization_id,
        institution_name=extract_institution_name(record),
        disabled=disabled,
    )


def normalize_authorizations(records: Iterable[Any]) -> list[AggregatorAuthorization]:
    """Normalize a list of raw authorizations, skipping unresolvable records.

    Input order is preserved. Duplicated ids keep their first occurrence.
    """
    result: list[AggregatorAuthorization] = []
    seen: set[str] = set()
    for index, record in enumerate(records):
        authorization = normalize_authorization(record)
        if authorization is None:
            logger.warning(
                "Skipping authorization record %d: no id under any of %s",
                index,
                ", ".join(AUTHORIZATION_ID_ALIASES),
            )
            continue
        if authorization.authorization_id in seen:
            continue
        seen.add(authorization.authorization_id)
        result.append(authorization)
    return result


def extract_symbol(symbol_data: Any) -> str | None:
    """Ticker from a position's symbol field.

    SnapTrade nests the ticker one or two levels deep
    (``position.symbol.symbol.symbol``) depending on the endpoint.
    """
    for _ in range(3):
        if symbol_data is None:
            return None
        if isinstance(symbol_data, str):
            return symbol_data or None
        symbol_data = get_field(symbol_data, "symbol")
    return symbol_data if isinstance(symbol_data, str) else None


def extract_currency(data: Any, default: str = "USD") -> str:
    """Currency code from a ``currency`` field that may be a string or ``{"code": ...}``."""
    currency = get_field(data, "currency")
    if currency is None:
        return default
    if isinstance(currency, str):
        return currency or default
    return str(get_field(currency, "code", default))


def normalize_account(record: Any, balances: Any = None) -> BrokerageAccount | None:
    """Map a raw account (plus its optional balance list) to BrokerageAccount.

    ``total_value`` comes from ``balance.total``. Cash and buying power come
    from the per-account balance list when provided.
    """
    account_id = get_field(record, "id")
    if not account_id:
        return None
    meta = get_field(record, "meta", {})
    account_type = get_field(meta, "type") or get_field(record, "raw_type") or get_field(record, "type")
    balance = get_field(record, "balance")
    total = parse_decimal(get_field(balance, "total"), Decimal("0"))

    cash = Decimal("0")
    buying_power: Decimal | None = None
    currency = extract_currency(get_field(balance, "total"), default="USD")
    for entry in balances or []:
        cash += parse_decimal(get_field(entry, "cash"), Decimal("0"))
        bp = parse_decimal(get_field(entry, "buying_power"))
        if bp is not None:
            buying_power = (buying_power or Decimal("0")) + bp

    return BrokerageAccount(
        id=str(account_id),
        name=str(get_field(record, "name", "") or ""),
        institution_name=extract_institution_name(record),
        account_type=str(account_type) if account_type else None,
        total_value=total,
        cash=cash,
        buying_power=buying_power,
        currency=currency,
        authorization_id=extract_authorization_id(
            {"brokerage_authorization": get_field(record, "brokerage_authorization")}
        ),
    )


def normalize_position(record: Any, account_id: str) -> BrokeragePosition | None:
    """Map one raw position; None if it has no ticker."""
    symbol_data = get_field(record, "symbol")
    symbol = extract_symbol(symbol_data)
    if not symbol:
        return None
    price_found = first_present(record, PRICE_ALIASES)
    price = parse_decimal(price_found[1] if price_found else None, Decimal("0"))
    inner = get_field(symbol_data, "symbol")
    details = inner if inner is not None and not isinstance(inner, str) else symbol_data
    return BrokeragePosition(
        account_id=account_id,
        symbol=symbol,
        units=parse_decimal(get_field(record, "units"), Decimal("0")),
        price=price,
        average_purchase_price=parse_decimal(get_field(record, "average_purchase_price")),
        name=get_field(details, "description"),
        currency=extract_currency(details),
    )


def normalize_activity(record: Any) -> BrokerageActivity | None:
    """Map one raw activity; None without an id or a parseable trade date."""
    external_id = get_field(record, "id")
    activity_date = parse_iso_datetime(get_field(record, "trade_date"))
    if not external_id or activity_date is None:
        return None
    account = get_field(record, "account")
    return BrokerageActivity(
        account_id=str(get_field(account, "id") or get_field(record, "account_id", "")),
        external_id=str(external_id),
        activity_date=activity_date,
        type=str(get_field(record, "type") or "unknown").lower(),
        amount=parse_decimal(get_field(record, "amount")),
        description=get_field(record, "description"),
        symbol=extract_symbol(get_field(record, "symbol")),
        units=parse_decimal(get_field(record, "units")),
        price=parse_decimal(get_field(record, "price")),
        currency=extract_currency(record),
    )
