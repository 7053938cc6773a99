"""Brokerage holdings cache."""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from integrations.aggregator_protocol import AggregatorProvider, BrokerageActivity, BrokeragePosition
from integrations.exceptions import ProviderError
from models import Holding
from services.credential_store import CredentialStore
from services.encryption import hash_for_logging
from services.errors import ErrorCode, FlintError, normalize_provider_error

logger = logging.getLogger(__name__)


def holding_from_position(user_id: str, position: BrokeragePosition, authorization_id: str | None = None) -> Holding:
    """Build a Holding, recomputing value and P/L from quantity and prices.

    A missing average cost is treated as the current price (zero P/L).
    """
    holding = Holding(
        user_id=user_id,
        account_id=position.account_id,
        provider_authorization_id=authorization_id,
        symbol=position.symbol,
        name=position.name,
        currency=position.currency,
    )
    average_cost = (
        position.average_purchase_price
        if position.average_purchase_price is not None
        else position.price
    )
    holding.apply_position(
        Decimal(position.units), Decimal(position.price), Decimal(average_cost)
    )
    return holding


class HoldingsService:
    """Refreshes and reads the user's cached positions. Does not commit."""

    def __init__(self, aggregator: AggregatorProvider, store: CredentialStore | None = None):
        self.aggregator = aggregator
        self.store = store or CredentialStore()

    def list_holdings(self, db: Session, user_id: str) -> list[Holding]:
        return (
            db.query(Holding)
            .filter(Holding.user_id == user_id)
            .order_by(Holding.current_value.desc(), Holding.symbol)
            .all()
        )

    def refresh_holdings(self, db: Session, user_id: str) -> list[Holding]:
        """Replace cached positions with fresh ones from the aggregator.

        An account whose position fetch fails keeps its previous holdings.
        """
        identity = self.store.get_identity(db, user_id)
        if identity is None:
            raise FlintError(ErrorCode.NOT_REGISTERED, "Connect a brokerage first.")
        try:
            accounts = self.aggregator.list_accounts(
                identity.provider_user_id, identity.provider_secret
            )
        except ProviderError as e:
            raise normalize_provider_error(e, action="load brokerage holdings") from e

        refreshed = 0
        for account in accounts:
            try:
                positions = self.aggregator.get_positions(
                    identity.provider_user_id, identity.provider_secret, account.id
                )
            except ProviderError as e:
                logger.warning(
                    "Position fetch failed for an account of user %s: %s",
                    hash_for_logging(user_id),
                    type(e).__name__,
                )
                continue

            db.query(Holding).filter(
                Holding.user_id == user_id, Holding.account_id == account.id
            ).delete()
            merged: dict[str, Holding] = {}
            for position in positions:
                if position.symbol in merged:
                    existing = merged[position.symbol]
                    units = Decimal(existing.quantity) + position.units
                    cost = Decimal(existing.average_cost) * Decimal(existing.quantity) + (
                        (position.average_purchase_price or position.price) * position.units
                    )
                    existing.apply_position(
                        units, position.price, cost / units if units else position.price
                    )
                    continue
                merged[position.symbol] = holding_from_position(
                    user_id, position, account.authorization_id
                )
            db.add_all(merged.values())
            refreshed += 1

        known_accounts = [account.id for account in accounts]
        db.query(Holding).filter(
            Holding.user_id == user_id, Holding.account_id.notin_(known_accounts)
        ).delete(synchronize_session=False)
        db.flush()
        logger.info(
            "Refreshed holdings for user %s (%d/%d accounts)",
            hash_for_logging(user_id),
            refreshed,
            len(accounts),
        )
        return self.list_holdings(db, user_id)

    def list_activities(
        self,
        db: Session,
        user_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[BrokerageActivity]:
        """Trades, dividends and transfers, newest first. Not cached."""
        if start_date and end_date and start_date > end_date:
            raise FlintError(ErrorCode.VALIDATION_ERROR, "startDate must not be after endDate.")
        identity = self.store.get_identity(db, user_id)
        if identity is None:
            raise FlintError(ErrorCode.NOT_REGISTERED, "Connect a brokerage first.")
        try:
            activities = self.aggregator.list_activities(
                identity.provider_user_id, identity.provider_secret, start_date, end_date
            )
        except ProviderError as e:
            raise normalize_provider_error(e, action="load brokerage activity") from e
        return sorted(activities, key=lambda a: a.activity_date, reverse=True)
