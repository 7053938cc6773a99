"""Brokerage connection endpoints: registration, sync, portal and rotation."""

import logging

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from api.deps import (
    get_aggregator,
    get_current_user,
    get_registration_limiter,
    get_request_id,
    require_csrf,
)
from database import get_db
from integrations.aggregator_protocol import AggregatorProvider
from integrations.exceptions import ProviderError
from models import BrokerageConnection, User
from schemas.common import MessageResponse
from schemas.connection import (
    ConnectionResponse,
    PortalRequest,
    PortalResponse,
    RegisterResponse,
    RotateSecretResponse,
    SyncResponse,
)
from services.connection_limits import account_limit, count_connections
from services.connection_sync_service import ConnectionSyncService, classify_health
from services.credential_store import CredentialStore
from services.errors import ErrorCode, FlintError, normalize_provider_error
from services.rate_limiter import RateLimiter
from services.registration_service import RegistrationCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/connections", tags=["connections"])


def _connection_response(connection: BrokerageConnection) -> ConnectionResponse:
    return ConnectionResponse(
        id=connection.id,
        provider_authorization_id=connection.provider_authorization_id,
        institution_name=connection.institution_name,
        disabled=bool(connection.disabled),
        health=classify_health(connection),
        created_at=connection.created_at,
        updated_at=connection.updated_at,
        last_sync_at=connection.last_sync_at,
    )


@router.get("", response_model=list[ConnectionResponse])
def list_connections(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Local brokerage connections with their health classification."""
    connections = (
        db.query(BrokerageConnection)
        .filter(BrokerageConnection.user_id == user.id)
        .order_by(BrokerageConnection.created_at)
        .all()
    )
    return [_connection_response(c) for c in connections]


@router.post("/register", response_model=RegisterResponse, dependencies=[Depends(require_csrf)])
def register(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    aggregator: AggregatorProvider = Depends(get_aggregator),
    limiter: RateLimiter = Depends(get_registration_limiter),
    request_id: str | None = Depends(get_request_id),
):
    """Ensure the user has exactly one aggregator identity. Idempotent."""
    coordinator = RegistrationCoordinator(aggregator, rate_limiter=limiter)
    result = coordinator.ensure_provider_identity(db, user.id, request_id=request_id)
    return RegisterResponse(
        provider_user_id=result.provider_user_id,
        created=result.created,
        recovered=result.recovered,
    )


@router.post("/sync", response_model=SyncResponse, dependencies=[Depends(require_csrf)])
def sync_connections(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    aggregator: AggregatorProvider = Depends(get_aggregator),
):
    """Reconcile the aggregator's authorizations into local connections."""
    result = ConnectionSyncService(aggregator).sync_connections_detailed(db, user)
    db.commit()
    return SyncResponse(
        connections=[_connection_response(c) for c in result.connections],
        created=result.created,
        updated=result.updated,
        rejected_ids=result.rejected_ids,
    )


@router.post(
    "/sync/{authorization_id}",
    response_model=ConnectionResponse,
    dependencies=[Depends(require_csrf)],
)
def sync_one_connection(
    authorization_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    aggregator: AggregatorProvider = Depends(get_aggregator),
):
    """Sync a single authorization, typically right after the portal redirect."""
    connection = ConnectionSyncService(aggregator).sync_one_connection(db, user, authorization_id)
    db.commit()
    return _connection_response(connection)


@router.post("/portal", response_model=PortalResponse, dependencies=[Depends(require_csrf)])
def connection_portal(
    body: PortalRequest | None = Body(default=None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    aggregator: AggregatorProvider = Depends(get_aggregator),
    limiter: RateLimiter = Depends(get_registration_limiter),
    request_id: str | None = Depends(get_request_id),
):
    """URL of the aggregator's connection portal.

    New connections are refused once the tier limit is reached; reconnecting
    an existing authorization is always allowed.
    """
    reconnect_id = body.reconnect_authorization_id if body is not None else None
    if not reconnect_id:
        limit = account_limit(user.subscription_tier, bool(user.is_admin))
        current = count_connections(db, user.id)
        if limit is not None and current >= limit:
            raise FlintError(
                ErrorCode.CONNECTION_LIMIT,
                f"Connection limit reached ({current}/{limit}). Upgrade your plan to connect more accounts.",
                details={"limit": limit, "current": current},
            )

    identity = RegistrationCoordinator(aggregator, rate_limiter=limiter).ensure_provider_identity(
        db, user.id, request_id=request_id
    )
    try:
        url = aggregator.login_url(
            identity.provider_user_id,
            identity.provider_secret,
            reconnect_authorization_id=reconnect_id,
        )
    except ProviderError as e:
        raise normalize_provider_error(e, action="open the brokerage connection portal") from e
    return PortalResponse(redirect_url=url)


@router.post(
    "/rotate-secret",
    response_model=RotateSecretResponse,
    dependencies=[Depends(require_csrf)],
)
def rotate_secret(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    aggregator: AggregatorProvider = Depends(get_aggregator),
):
    """Replace the per-user aggregator secret."""
    result = RegistrationCoordinator(aggregator).rotate_secret(db, user.id)
    db.commit()
    row = CredentialStore().get(db, user.id)
    return RotateSecretResponse(
        provider_user_id=result.provider_user_id,
        rotated_at=row.rotated_at if row is not None else None,
    )


@router.delete("/identity", response_model=MessageResponse, dependencies=[Depends(require_csrf)])
def delete_identity(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    aggregator: AggregatorProvider = Depends(get_aggregator),
):
    """Remove the user's aggregator identity and every brokerage connection."""
    removed = RegistrationCoordinator(aggregator).remove_identity(db, user.id)
    if not removed:
        raise FlintError(ErrorCode.NOT_FOUND, "No brokerage identity to remove.")
    db.commit()
    return MessageResponse(message="Brokerage identity removed.")
