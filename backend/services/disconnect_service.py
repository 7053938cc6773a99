"""Removal of linked bank, crypto and brokerage accounts."""

import logging

from sqlalchemy.orm import Session

from integrations.aggregator_protocol import AggregatorProvider
from integrations.exceptions import ProviderError
from models import BrokerageConnection, ConnectedAccount, Holding, User
from services.credential_store import CredentialStore
from services.encryption import hash_for_logging
from services.errors import ErrorCode, FlintError

logger = logging.getLogger(__name__)

LOCAL_PROVIDERS = ("bank", "crypto")
BROKERAGE = "brokerage"


class DisconnectService:
    """Deletes one linked account for a user. Does not commit."""

    def __init__(self, aggregator: AggregatorProvider, store: CredentialStore | None = None):
        self.aggregator = aggregator
        self.store = store or CredentialStore()

    def disconnect(self, db: Session, user: User, provider: str, account_id: str) -> None:
        """Disconnect ``account_id`` of ``provider``.

        Bank and crypto accounts are local rows. For brokerage, ``account_id``
        is the local connection id or the aggregator's authorization id; the
        authorization is removed at the aggregator best effort, then the
        connection and its holdings are deleted. The aggregator identity is
        kept so that linking again reuses it.

        Raises:
            FlintError: VALIDATION_ERROR for an unknown provider, NOT_FOUND
                when the account does not belong to the user.
        """
        if provider in LOCAL_PROVIDERS:
            row = (
                db.query(ConnectedAccount)
                .filter(
                    ConnectedAccount.id == account_id,
                    ConnectedAccount.user_id == user.id,
                    ConnectedAccount.provider == provider,
                )
                .first()
            )
            if row is None:
                raise FlintError(ErrorCode.NOT_FOUND, "Account not found.")
            db.delete(row)
            db.flush()
            logger.info("Disconnected %s account for user %s", provider, hash_for_logging(user.id))
            return

        if provider != BROKERAGE:
            raise FlintError(ErrorCode.VALIDATION_ERROR, f"Unknown provider: {provider}")

        connection = (
            db.query(BrokerageConnection)
            .filter(
                BrokerageConnection.user_id == user.id,
                (BrokerageConnection.id == account_id)
                | (BrokerageConnection.provider_authorization_id == account_id),
            )
            .first()
        )
        if connection is None:
            raise FlintError(ErrorCode.NOT_FOUND, "Connection not found.")

        authorization_id = connection.provider_authorization_id
        identity = self.store.get_identity(db, user.id)
        if identity is not None:
            try:
                self.aggregator.remove_authorization(
                    identity.provider_user_id, identity.provider_secret, authorization_id
                )
            except ProviderError as e:
                logger.warning(
                    "Remote authorization removal failed for user %s (%s); deleting locally",
                    hash_for_logging(user.id),
                    type(e).__name__,
                )

        db.query(Holding).filter(
            Holding.user_id == user.id,
            Holding.provider_authorization_id == authorization_id,
        ).delete()
        db.delete(connection)
        db.flush()
        logger.info("Disconnected brokerage connection for user %s", hash_for_logging(user.id))
