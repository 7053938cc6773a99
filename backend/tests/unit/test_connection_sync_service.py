"""Tests for ConnectionSyncService and health classification."""

from datetime import datetime, timedelta, timezone

import pytest

from integrations.exceptions import ProviderAuthError
from models import BrokerageConnection
from services.connection_sync_service import (
    ConnectionHealth,
    ConnectionSyncService,
    classify_health,
)
from services.errors import ErrorCode, FlintError
from tests.fixtures import create_bank_account, create_connection

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class StepClock:
    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now


def _auth(auth_id: str, name: str = "Robinhood", disabled: bool = False) -> dict:
    return {"id": auth_id, "brokerage": {"name": name}, "disabled": disabled}


class TestSyncConnections:
    def test_requires_identity(self, db, user, fake_aggregator):
        with pytest.raises(FlintError) as exc_info:
            ConnectionSyncService(fake_aggregator).sync_connections(db, user)
        assert exc_info.value.code == ErrorCode.NOT_REGISTERED

    def test_inserts_new_connections_in_provider_order(self, db, user, identity, fake_aggregator):
        fake_aggregator.authorizations = [_auth("auth_b", "Fidelity"), _auth("auth_a", "Schwab")]

        connections = ConnectionSyncService(fake_aggregator).sync_connections(db, user)

        assert [c.provider_authorization_id for c in connections] == ["auth_b", "auth_a"]
        assert [c.institution_name for c in connections] == ["Fidelity", "Schwab"]
        assert db.query(BrokerageConnection).count() == 2

    def test_resync_is_idempotent(self, db, user, identity, fake_aggregator):
        fake_aggregator.authorizations = [_auth("auth_1")]
        clock = StepClock()
        service = ConnectionSyncService(fake_aggregator, clock=clock)

        service.sync_connections(db, user)
        db.commit()
        first = db.query(BrokerageConnection).one()
        created_at = first.created_at

        clock.now = NOW + timedelta(hours=1)
        service.sync_connections(db, user)
        db.commit()

        rows = db.query(BrokerageConnection).all()
        assert len(rows) == 1
        row = rows[0]
        assert row.created_at == created_at
        assert row.updated_at == NOW + timedelta(hours=1)
        assert row.last_sync_at == NOW + timedelta(hours=1)
        assert row.institution_name == "Robinhood"
        assert row.disabled is False

    def test_updates_disabled_flag_and_name(self, db, user, identity, fake_aggregator):
        create_connection(db, user.id, "auth_1", institution_name="Old Name")
        fake_aggregator.authorizations = [_auth("auth_1", "New Name", disabled=True)]

        result = ConnectionSyncService(fake_aggregator).sync_connections_detailed(db, user)

        assert result.updated == 1
        assert result.created == 0
        row = db.query(BrokerageConnection).one()
        assert row.institution_name == "New Name"
        assert row.disabled is True

    def test_skips_records_without_id(self, db, user, identity, fake_aggregator, caplog):
        fake_aggregator.authorizations = [{"brokerage": {"name": "Mystery"}}, _auth("auth_1")]

        connections = ConnectionSyncService(fake_aggregator).sync_connections(db, user)

        assert [c.provider_authorization_id for c in connections] == ["auth_1"]
        assert "Skipping authorization record 0" in caplog.text

    def test_accepts_alternative_id_fields(self, db, user, identity, fake_aggregator):
        fake_aggregator.authorizations = [
            {"brokerage_authorization_id": "auth_x", "institution_name": "Vanguard"},
            {"brokerage_authorization": {"id": "auth_y"}, "brokerage_name": "E*Trade"},
        ]

        connections = ConnectionSyncService(fake_aggregator).sync_connections(db, user)

        assert [c.provider_authorization_id for c in connections] == ["auth_x", "auth_y"]
        assert [c.institution_name for c in connections] == ["Vanguard", "E*Trade"]

    def test_new_connections_respect_tier_limit(self, db, user, identity, fake_aggregator):
        create_bank_account(db, user.id, "acc_1")
        fake_aggregator.authorizations = [_auth("auth_1"), _auth("auth_2"), _auth("auth_3")]

        result = ConnectionSyncService(fake_aggregator).sync_connections_detailed(db, user)

        assert result.created == 1
        assert result.rejected_ids == ["auth_2", "auth_3"]
        assert db.query(BrokerageConnection).count() == 1

    def test_existing_connections_update_even_at_limit(self, db, user, identity, fake_aggregator):
        create_bank_account(db, user.id, "acc_1")
        create_connection(db, user.id, "auth_1")
        fake_aggregator.authorizations = [_auth("auth_1", "Renamed")]

        result = ConnectionSyncService(fake_aggregator).sync_connections_detailed(db, user)

        assert result.updated == 1
        assert result.rejected_ids == []

    def test_provider_auth_failure_is_service_unavailable(self, db, user, identity, fake_aggregator):
        fake_aggregator.list_authorizations_error = ProviderAuthError("expired")

        with pytest.raises(FlintError) as exc_info:
            ConnectionSyncService(fake_aggregator).sync_connections(db, user)
        assert exc_info.value.code == ErrorCode.SERVICE_UNAVAILABLE


class TestSyncOneConnection:
    def test_upserts_only_target(self, db, user, identity, fake_aggregator):
        fake_aggregator.authorizations = [_auth("auth_1"), _auth("auth_2", "Fidelity")]

        connection = ConnectionSyncService(fake_aggregator).sync_one_connection(db, user, "auth_2")

        assert connection.provider_authorization_id == "auth_2"
        assert connection.institution_name == "Fidelity"
        assert db.query(BrokerageConnection).count() == 1

    def test_not_yet_visible(self, db, user, identity, fake_aggregator):
        fake_aggregator.authorizations = [_auth("auth_1")]

        with pytest.raises(FlintError) as exc_info:
            ConnectionSyncService(fake_aggregator).sync_one_connection(db, user, "auth_new")

        assert exc_info.value.code == ErrorCode.NOT_YET_VISIBLE
        assert exc_info.value.retryable is True
        assert db.query(BrokerageConnection).count() == 0

    def test_over_limit(self, db, user, identity, fake_aggregator):
        create_bank_account(db, user.id, "acc_1")
        create_bank_account(db, user.id, "acc_2")
        fake_aggregator.authorizations = [_auth("auth_1")]

        with pytest.raises(FlintError) as exc_info:
            ConnectionSyncService(fake_aggregator).sync_one_connection(db, user, "auth_1")

        assert exc_info.value.code == ErrorCode.CONNECTION_LIMIT


class TestClassifyHealth:
    def test_disabled_wins(self):
        conn = BrokerageConnection(disabled=True, last_sync_at=NOW)
        assert classify_health(conn, now=NOW) == ConnectionHealth.DISABLED

    def test_recent_sync_is_connected(self):
        conn = BrokerageConnection(disabled=False, last_sync_at=NOW - timedelta(hours=47))
        assert classify_health(conn, now=NOW) == ConnectionHealth.CONNECTED

    def test_stale_sync_is_disconnected(self):
        conn = BrokerageConnection(disabled=False, last_sync_at=NOW - timedelta(hours=49))
        assert classify_health(conn, now=NOW) == ConnectionHealth.DISCONNECTED

    def test_never_synced_is_disconnected(self):
        conn = BrokerageConnection(disabled=False, last_sync_at=None)
        assert classify_health(conn, now=NOW) == ConnectionHealth.DISCONNECTED

    def test_naive_timestamps_are_utc(self):
        conn = BrokerageConnection(disabled=False, last_sync_at=datetime(2026, 3, 1, 11, 0))
        assert classify_health(conn, now=NOW) == ConnectionHealth.CONNECTED

    def test_custom_threshold(self):
        conn = BrokerageConnection(disabled=False, last_sync_at=NOW - timedelta(hours=2))
        assert classify_health(conn, now=NOW, stale_hours=1) == ConnectionHealth.DISCONNECTED
