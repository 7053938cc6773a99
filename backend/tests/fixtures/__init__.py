"""Test fixtures and sample data."""
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from integrations.aggregator_protocol import AggregatorIdentity
from models import BrokerageConnection, ConnectedAccount, ProviderIdentity, User
from services.credential_store import CredentialStore

CSRF_TOKEN = "test-csrf-token"


def create_user(db: Session, user_id: str = "u1", tier: str = "free", is_admin: bool = False) -> User:
    user = User(id=user_id, email=f"{user_id}@example.com", subscription_tier=tier, is_admin=is_admin)
    db.add(user)
    db.commit()
    return user


def create_identity(
    db: Session,
    user_id: str,
    provider_user_id: str | None = None,
    secret: str = "stored-secret",
    created_at: datetime | None = None,
) -> ProviderIdentity:
    row = CredentialStore().save(
        db, user_id, AggregatorIdentity(provider_user_id or user_id, secret)
    )
    if created_at is not None:
        row.created_at = created_at
    db.commit()
    return row


def create_bank_account(
    db: Session,
    user_id: str,
    external_id: str = "acc_checking",
    account_type: str = "bank",
    balance: Decimal = Decimal("1000.00"),
    access_token: str | None = "token_1",
    provider: str = "bank",
    display_name: str | None = None,
) -> ConnectedAccount:
    row = ConnectedAccount(
        user_id=user_id,
        provider=provider,
        external_account_id=external_id,
        access_token=access_token,
        institution_name="Test Bank",
        account_name=external_id,
        display_name=display_name or f"Test Bank - {external_id}",
        account_type=account_type,
        balance=balance,
        last_synced=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    db.add(row)
    db.commit()
    return row


def create_connection(
    db: Session,
    user_id: str,
    authorization_id: str = "auth_1",
    institution_name: str = "Robinhood",
    disabled: bool = False,
    last_sync_at: datetime | None = None,
) -> BrokerageConnection:
    row = BrokerageConnection(
        user_id=user_id,
        provider_authorization_id=authorization_id,
        institution_name=institution_name,
        disabled=disabled,
        last_sync_at=last_sync_at,
    )
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def user(db: Session) -> User:
    """A free-tier user."""
    return create_user(db, "u1")


@pytest.fixture
def admin_user(db: Session) -> User:
    return create_user(db, "admin", tier="free", is_admin=True)


@pytest.fixture
def identity(db: Session, user: User) -> ProviderIdentity:
    """An aggregator identity for ``user``, created long enough ago to be swept."""
    return create_identity(
        db, user.id, provider_user_id="st-u1", created_at=datetime(2025, 1, 1, tzinfo=timezone.utc)
    )
