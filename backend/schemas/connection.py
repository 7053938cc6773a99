"""Pydantic schemas for brokerage connection endpoints."""

from datetime import datetime
from typing import Optional

from schemas.common import CamelModel
from services.connection_sync_service import ConnectionHealth


class RegisterResponse(CamelModel):
    """Result of ensuring the user's aggregator identity. The secret is never returned."""

    provider_user_id: str
    created: bool
    recovered: bool


class ConnectionResponse(CamelModel):
    id: str
    provider_authorization_id: str
    institution_name: str
    disabled: bool
    health: ConnectionHealth
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None


class SyncResponse(CamelModel):
    connections: list[ConnectionResponse]
    created: int
    updated: int
    rejected_ids: list[str]


class PortalRequest(CamelModel):
    reconnect_authorization_id: Optional[str] = None


class PortalResponse(CamelModel):
    redirect_url: str


class RotateSecretResponse(CamelModel):
    provider_user_id: str
    rotated_at: Optional[datetime] = None
