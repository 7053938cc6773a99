"""Sweep that removes aggregator identities with no linked accounts.

An identity is orphaned when registration succeeded but the user never
finished linking a brokerage. Identities younger than the grace period are
left alone so users who are mid-way through the connection portal are not
disturbed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from config import settings
from integrations.aggregator_protocol import AggregatorProvider
from integrations.exceptions import ProviderError
from integrations.parsing_utils import ensure_utc
from models import BrokerageConnection, Holding
from models.utils import utcnow
from services.credential_store import CredentialStore
from services.encryption import hash_for_logging

logger = logging.getLogger(__name__)


@dataclass
class CleanupReport:
    checked: int = 0
    orphaned: int = 0
    deleted_local: int = 0
    deleted_remote: int = 0
    remote_failures: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class _IdentityRef:
    internal_user_id: str
    provider_user_id: str
    provider_secret: str = field(repr=False)
    created_at: datetime | None = None


class OrphanCleanupService:
    def __init__(
        self,
        aggregator: AggregatorProvider,
        store: CredentialStore | None = None,
        min_age: timedelta | None = None,
    ):
        self.aggregator = aggregator
        self.store = store or CredentialStore()
        self.min_age = (
            min_age if min_age is not None else timedelta(hours=settings.ORPHAN_CLEANUP_MIN_AGE_HOURS)
        )

    def run_sweep(self, db: Session, now: datetime | None = None) -> CleanupReport:
        """Check every stored identity and delete the orphaned ones.

        Commits after each deleted identity. A provider failure while
        listing accounts skips that identity (it is never read as "zero
        accounts"); a failed provider-side delete is logged and the local
        row is removed anyway.
        """
        now = now or utcnow()
        report = CleanupReport()
        refs = [
            _IdentityRef(row.internal_user_id, row.provider_user_id, row.provider_secret, row.created_at)
            for row in self.store.list_all(db)
        ]

        for ref in refs:
            user_hash = hash_for_logging(ref.internal_user_id)
            if ref.created_at is not None and now - ensure_utc(ref.created_at) < self.min_age:
                continue
            report.checked += 1
            try:
                accounts = self.aggregator.list_accounts(ref.provider_user_id, ref.provider_secret)
            except ProviderError as e:
                report.skipped += 1
                report.errors.append(f"{user_hash}: list accounts failed ({type(e).__name__})")
                logger.warning("Cleanup: cannot list accounts for user %s: %s", user_hash, type(e).__name__)
                continue
            if accounts:
                continue

            report.orphaned += 1
            try:
                self.aggregator.delete_identity(ref.provider_user_id)
                report.deleted_remote += 1
            except ProviderError as e:
                report.remote_failures += 1
                logger.warning(
                    "Cleanup: provider delete failed for user %s (%s); removing local row anyway",
                    user_hash,
                    type(e).__name__,
                )

            try:
                db.query(Holding).filter(Holding.user_id == ref.internal_user_id).delete()
                db.query(BrokerageConnection).filter(
                    BrokerageConnection.user_id == ref.internal_user_id
                ).delete()
                self.store.delete(db, ref.internal_user_id)
                db.commit()
                report.deleted_local += 1
                logger.info("Cleanup: removed orphaned identity for user %s", user_hash)
            except Exception as e:
                db.rollback()
                report.errors.append(f"{user_hash}: local delete failed ({type(e).__name__})")
                logger.exception("Cleanup: local delete failed for user %s", user_hash)

        logger.info(
            "Orphan cleanup: %d checked, %d orphaned, %d removed, %d remote failures, %d skipped",
            report.checked,
            report.orphaned,
            report.deleted_local,
            report.remote_failures,
            report.skipped,
        )
        return report
