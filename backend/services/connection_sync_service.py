"""Reconciles the aggregator's brokerage authorizations into local records."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy.orm import Session

from config import settings
from integrations.aggregator_protocol import AggregatorAuthorization, AggregatorProvider
from integrations.exceptions import ProviderError
from integrations.parsing_utils import ensure_utc
from integrations.snaptrade_normalizers import normalize_authorizations
from models import BrokerageConnection, User
from models.utils import utcnow
from services.connection_limits import plan_for_user
from services.credential_store import CredentialStore
from services.encryption import hash_for_logging
from services.errors import ErrorCode, FlintError, normalize_provider_error

logger = logging.getLogger(__name__)


class ConnectionHealth(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    DISABLED = "disabled"


def classify_health(
    connection: BrokerageConnection,
    now: datetime | None = None,
    stale_hours: int | None = None,
) -> ConnectionHealth:
    """Health of a connection for display. Not persisted.

    Disabled wins; otherwise a connection whose last successful sync is
    older than the staleness threshold (or that never synced) is
    disconnected.
    """
    if connection.disabled:
        return ConnectionHealth.DISABLED
    now = now or utcnow()
    threshold = timedelta(hours=stale_hours if stale_hours is not None else settings.CONNECTION_STALE_HOURS)
    if connection.last_sync_at is None or now - ensure_utc(connection.last_sync_at) > threshold:
        return ConnectionHealth.DISCONNECTED
    return ConnectionHealth.CONNECTED


@dataclass
class ConnectionSyncResult:
    connections: list[BrokerageConnection] = field(default_factory=list)
    created: int = 0
    updated: int = 0
    rejected_ids: list[str] = field(default_factory=list)


class ConnectionSyncService:
    """Upserts :class:`BrokerageConnection` rows from the aggregator. Does not commit."""

    def __init__(
        self,
        aggregator: AggregatorProvider,
        store: CredentialStore | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.aggregator = aggregator
        self.store = store or CredentialStore()
        self._clock = clock

    def _fetch_authorizations(self, db: Session, user_id: str) -> list[AggregatorAuthorization]:
        identity = self.store.get_identity(db, user_id)
        if identity is None:
            raise FlintError(
                ErrorCode.NOT_REGISTERED,
                "Connect a brokerage first.",
            )
        try:
            raw = self.aggregator.list_authorizations(
                identity.provider_user_id, identity.provider_secret
            )
        except ProviderError as e:
            logger.warning(
                "Listing authorizations failed for user %s: %s",
                hash_for_logging(user_id),
                type(e).__name__,
            )
            raise normalize_provider_error(e, action="sync brokerage connections") from e
        return normalize_authorizations(raw)

    def _existing(self, db: Session, user_id: str) -> dict[str, BrokerageConnection]:
        rows = db.query(BrokerageConnection).filter(BrokerageConnection.user_id == user_id).all()
        return {row.provider_authorization_id: row for row in rows}

    def _upsert(
        self,
        db: Session,
        user: User,
        authorizations: list[AggregatorAuthorization],
        existing: dict[str, BrokerageConnection],
    ) -> ConnectionSyncResult:
        now = self._clock()
        result = ConnectionSyncResult()

        new_ids = [a.authorization_id for a in authorizations if a.authorization_id not in existing]
        plan = plan_for_user(db, user, new_ids, existing_ids=())
        accepted = set(plan.accepted)
        result.rejected_ids = plan.rejected
        if plan.rejected:
            logger.warning(
                "User %s over connection limit (%s): %d new authorization(s) not recorded",
                hash_for_logging(user.id),
                plan.limit,
                len(plan.rejected),
            )

        for auth in authorizations:
            row = existing.get(auth.authorization_id)
            if row is not None:
                row.institution_name = auth.institution_name
                row.disabled = auth.disabled
                row.updated_at = now
                row.last_sync_at = now
                result.updated += 1
            elif auth.authorization_id in accepted:
                row = BrokerageConnection(
                    user_id=user.id,
                    provider_authorization_id=auth.authorization_id,
                    institution_name=auth.institution_name,
                    disabled=auth.disabled,
                    created_at=now,
                    updated_at=now,
                    last_sync_at=now,
                )
                db.add(row)
                existing[auth.authorization_id] = row
                result.created += 1
            else:
                continue
            result.connections.append(row)

        db.flush()
        return result

    def sync_connections_detailed(self, db: Session, user: User) -> ConnectionSyncResult:
        authorizations = self._fetch_authorizations(db, user.id)
        result = self._upsert(db, user, authorizations, self._existing(db, user.id))
        logger.info(
            "Synced connections for user %s: %d created, %d updated, %d rejected",
            hash_for_logging(user.id),
            result.created,
            result.updated,
            len(result.rejected_ids),
        )
        return result

    def sync_connections(self, db: Session, user: User) -> list[BrokerageConnection]:
        """Upsert every authorization the aggregator reports, in provider order."""
        return self.sync_connections_detailed(db, user).connections

    def sync_one_connection(
        self, db: Session, user: User, authorization_id: str
    ) -> BrokerageConnection:
        """Upsert a single authorization (used right after an OAuth redirect).

        Raises:
            FlintError: NOT_YET_VISIBLE if the aggregator does not list the
                authorization yet; CONNECTION_LIMIT if it is new and the
                user has no slot left.
        """
        authorizations = self._fetch_authorizations(db, user.id)
        target = [a for a in authorizations if a.authorization_id == authorization_id]
        if not target:
            raise FlintError(
                ErrorCode.NOT_YET_VISIBLE,
                "The brokerage connection is not visible yet. Please retry in a few seconds.",
                retry_after=5,
            )
        result = self._upsert(db, user, target, self._existing(db, user.id))
        if not result.connections:
            raise FlintError(
                ErrorCode.CONNECTION_LIMIT,
                "Connection limit reached for your subscription tier.",
            )
        return result.connections[0]
