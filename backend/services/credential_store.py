"""Database-backed store of aggregator identities.

This is the single source of truth for per-user aggregator secrets. Callers
read the identity at the start of each request or job and never keep it
around, so a rotated secret is picked up immediately.
"""

import logging

from sqlalchemy.orm import Session

from integrations.aggregator_protocol import AggregatorIdentity
from models import ProviderIdentity
from models.utils import utcnow

logger = logging.getLogger(__name__)


class CredentialStore:
    """Read and write :class:`ProviderIdentity` rows. Does not commit."""

    def get(self, db: Session, internal_user_id: str) -> ProviderIdentity | None:
        return db.get(ProviderIdentity, internal_user_id)

    def get_identity(self, db: Session, internal_user_id: str) -> AggregatorIdentity | None:
        """Return the identity as a plain value, or None if the user is not registered."""
        row = self.get(db, internal_user_id)
        if row is None:
            return None
        return AggregatorIdentity(
            provider_user_id=row.provider_user_id,
            provider_secret=row.provider_secret,
        )

    def save(
        self, db: Session, internal_user_id: str, identity: AggregatorIdentity
    ) -> ProviderIdentity:
        """Insert the identity for a user (replacing any existing row)."""
        row = self.get(db, internal_user_id)
        if row is None:
            row = ProviderIdentity(internal_user_id=internal_user_id)
            db.add(row)
        row.provider_user_id = identity.provider_user_id
        row.provider_secret = identity.provider_secret
        row.created_at = utcnow()
        row.rotated_at = None
        db.flush()
        return row

    def rotate(self, db: Session, internal_user_id: str, new_secret: str) -> ProviderIdentity:
        row = self.get(db, internal_user_id)
        if row is None:
            raise LookupError(f"No aggregator identity for user {internal_user_id}")
        row.provider_secret = new_secret
        row.rotated_at = utcnow()
        db.flush()
        return row

    def delete(self, db: Session, internal_user_id: str) -> bool:
        row = self.get(db, internal_user_id)
        if row is None:
            return False
        db.delete(row)
        db.flush()
        return True

    def list_all(self, db: Session) -> list[ProviderIdentity]:
        return db.query(ProviderIdentity).order_by(ProviderIdentity.created_at).all()
