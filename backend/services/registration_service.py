"""Registration of users with the brokerage aggregator.

Guarantees at most one aggregator identity per internal user, even when
several requests for the same user arrive at once, and repairs the case
where the aggregator already knows the user but the local row is missing.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from integrations.aggregator_protocol import AggregatorIdentity, AggregatorProvider
from integrations.exceptions import ProviderAPIError, ProviderError
from integrations.snaptrade_client import USER_EXISTS_ERROR_CODE
from models import BrokerageConnection, Holding
from services.credential_store import CredentialStore
from services.encryption import hash_for_logging
from services.errors import ErrorCode, FlintError, normalize_provider_error
from services.locking import with_exclusive_lock
from services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class IdentityResult:
    """Outcome of :meth:`RegistrationCoordinator.ensure_provider_identity`."""

    provider_user_id: str
    provider_secret: str = field(repr=False)
    created: bool = False  # this call registered the identity
    recovered: bool = False  # an orphaned aggregator identity was replaced


class RegistrationCoordinator:
    """Creates, rotates and removes aggregator identities."""

    def __init__(
        self,
        aggregator: AggregatorProvider,
        store: CredentialStore | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.aggregator = aggregator
        self.store = store or CredentialStore()
        self.rate_limiter = rate_limiter

    def ensure_provider_identity(
        self, db: Session, internal_user_id: str, request_id: str | None = None
    ) -> IdentityResult:
        """Return the user's aggregator identity, registering it if needed.

        Commits when a new identity is stored.

        Raises:
            FlintError: RATE_LIMITED, SERVICE_UNAVAILABLE or INTERNAL_ERROR.
        """
        existing = self.store.get_identity(db, internal_user_id)
        if existing is not None:
            return IdentityResult(existing.provider_user_id, existing.provider_secret)

        if not self.aggregator.is_configured():
            raise FlintError(
                ErrorCode.SERVICE_UNAVAILABLE,
                "Brokerage connections are not available right now.",
            )

        return with_exclusive_lock(
            db,
            f"aggregator-identity:{internal_user_id}",
            lambda: self._register_locked(db, internal_user_id, request_id),
        )

    def _register_locked(
        self, db: Session, internal_user_id: str, request_id: str | None
    ) -> IdentityResult:
        user_hash = hash_for_logging(internal_user_id)

        existing = self.store.get_identity(db, internal_user_id)
        if existing is not None:
            logger.info("Identity for user %s was registered by a concurrent request", user_hash)
            return IdentityResult(existing.provider_user_id, existing.provider_secret)

        # Only attempts that reach the provider count against the limit
        if self.rate_limiter is not None:
            self.rate_limiter.hit(f"register:{internal_user_id}")

        identity, recovered = self._register_with_recovery(db, internal_user_id, request_id)
        self.store.save(db, internal_user_id, identity)
        db.commit()
        logger.info(
            "Registered aggregator identity for user %s%s",
            user_hash,
            " after orphan recovery" if recovered else "",
        )
        return IdentityResult(
            identity.provider_user_id,
            identity.provider_secret,
            created=True,
            recovered=recovered,
        )

    def _register_with_recovery(
        self, db: Session, internal_user_id: str, request_id: str | None
    ) -> tuple[AggregatorIdentity, bool]:
        try:
            return self.aggregator.register_identity(internal_user_id), False
        except ProviderAPIError as e:
            if e.error_code != USER_EXISTS_ERROR_CODE:
                raise self._map_failure(e, internal_user_id, request_id) from e
        except ProviderError as e:
            raise self._map_failure(e, internal_user_id, request_id) from e

        user_hash = hash_for_logging(internal_user_id)
        logger.warning(
            "Aggregator already has an identity for user %s but no local row exists; "
            "deleting it and registering again (request %s)",
            user_hash,
            request_id,
        )
        try:
            self.aggregator.delete_identity(internal_user_id)
            self.store.delete(db, internal_user_id)
            return self.aggregator.register_identity(internal_user_id), True
        except ProviderError as e:
            logger.error(
                "Orphan recovery failed for user %s (request %s): %s",
                user_hash,
                request_id,
                type(e).__name__,
            )
            raise FlintError(
                ErrorCode.SERVICE_UNAVAILABLE,
                "We could not finish setting up your brokerage connection. Please try again shortly.",
                retry_after=30,
            ) from e

    def _map_failure(
        self, exc: ProviderError, internal_user_id: str, request_id: str | None
    ) -> FlintError:
        error = normalize_provider_error(exc, action="register with the brokerage provider")
        if error.code == ErrorCode.INTERNAL_ERROR:
            logger.error(
                "Aggregator registration failed for user %s (request %s): %s status=%s code=%s",
                hash_for_logging(internal_user_id),
                request_id,
                type(exc).__name__,
                getattr(exc, "status_code", None),
                getattr(exc, "error_code", None),
            )
        else:
            logger.warning(
                "Aggregator registration unavailable for user %s (request %s): %s",
                hash_for_logging(internal_user_id),
                request_id,
                error.code.value,
            )
        return error

    def rotate_secret(self, db: Session, internal_user_id: str) -> IdentityResult:
        """Ask the aggregator for a new user secret and store it. Does not commit."""
        identity = self.store.get_identity(db, internal_user_id)
        if identity is None:
            raise FlintError(ErrorCode.NOT_REGISTERED, "No brokerage identity to rotate.")
        try:
            new_secret = self.aggregator.reset_secret(
                identity.provider_user_id, identity.provider_secret
            )
        except ProviderError as e:
            raise normalize_provider_error(e, action="rotate the brokerage secret") from e
        self.store.rotate(db, internal_user_id, new_secret)
        logger.info("Rotated aggregator secret for user %s", hash_for_logging(internal_user_id))
        return IdentityResult(identity.provider_user_id, new_secret)

    def remove_identity(self, db: Session, internal_user_id: str) -> bool:
        """Delete the identity at the aggregator and locally, with its connections.

        The remote delete is best effort; local cleanup always proceeds.
        Does not commit.
        """
        identity = self.store.get_identity(db, internal_user_id)
        if identity is None:
            return False
        try:
            self.aggregator.delete_identity(identity.provider_user_id)
        except ProviderError as e:
            logger.warning(
                "Remote identity delete failed for user %s: %s",
                hash_for_logging(internal_user_id),
                type(e).__name__,
            )
        db.query(Holding).filter(Holding.user_id == internal_user_id).delete()
        db.query(BrokerageConnection).filter(
            BrokerageConnection.user_id == internal_user_id
        ).delete()
        self.store.delete(db, internal_user_id)
        return True
