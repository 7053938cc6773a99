"""Shared FastAPI dependencies: current user, anti-forgery check, providers."""

import secrets
from functools import lru_cache

from fastapi import Cookie, Depends, Header, Request
from sqlalchemy.orm import Session

from database import get_db
from integrations.snaptrade_client import SnapTradeClient
from integrations.teller_client import TellerClient
from models import User
from services.cleanup_scheduler import CleanupScheduler
from services.errors import ErrorCode, FlintError
from services.rate_limiter import RateLimiter
from utils.ttl_cache import InMemoryTTLCache


CSRF_COOKIE = "csrf_token"


def get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def get_current_user(
    x_user_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """Load the user identified by the upstream session layer.

    The ``X-User-Id`` header is trusted as set by the session proxy in
    front of this service.
    """
    if not x_user_id:
        raise FlintError(ErrorCode.UNAUTHORIZED, "Authentication required.")
    user = db.get(User, x_user_id)
    if user is None:
        raise FlintError(ErrorCode.UNAUTHORIZED, "Authentication required.")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise FlintError(ErrorCode.UNAUTHORIZED, "Admin access required.")
    return user


def require_csrf(
    x_csrf_token: str | None = Header(default=None),
    csrf_token: str | None = Cookie(default=None, alias=CSRF_COOKIE),
) -> None:
    """Double-submit check: the header must echo the ``csrf_token`` cookie."""
    if not x_csrf_token or not csrf_token:
        raise FlintError(ErrorCode.UNAUTHORIZED, "Missing anti-forgery token.")
    if not secrets.compare_digest(x_csrf_token.encode(), csrf_token.encode()):
        raise FlintError(ErrorCode.UNAUTHORIZED, "Invalid anti-forgery token.")


@lru_cache
def get_aggregator() -> SnapTradeClient:
    """Dependency for the brokerage aggregator client (overridable in tests)."""
    return SnapTradeClient()


@lru_cache
def get_bank_provider() -> TellerClient:
    """Dependency for the bank provider client (overridable in tests)."""
    return TellerClient()


@lru_cache
def get_registration_limiter() -> RateLimiter:
    """Process-wide limiter for registration attempts per user."""
    return RateLimiter(InMemoryTTLCache())


def get_cleanup_scheduler(request: Request) -> CleanupScheduler:
    return request.app.state.cleanup_scheduler
