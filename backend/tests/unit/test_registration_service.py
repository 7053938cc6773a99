"""Tests for RegistrationCoordinator."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import text

from integrations.exceptions import ProviderAPIError, ProviderAuthError, ProviderConnectionError
from models import BrokerageConnection, Holding, ProviderIdentity
from services.credential_store import CredentialStore
from services.errors import ErrorCode, FlintError
from services.rate_limiter import RateLimiter
from services.registration_service import RegistrationCoordinator
from tests.fixtures import create_connection, create_user
from tests.fixtures.mocks import FakeAggregator
from utils.ttl_cache import InMemoryTTLCache


class TestEnsureProviderIdentity:
    def test_registers_new_user(self, db, user, fake_aggregator):
        result = RegistrationCoordinator(fake_aggregator).ensure_provider_identity(db, user.id)

        assert result.created is True
        assert result.recovered is False
        assert result.provider_user_id == "u1"
        assert fake_aggregator.register_calls == 1
        stored = CredentialStore().get_identity(db, user.id)
        assert stored.provider_secret == result.provider_secret

    def test_fast_path_skips_provider(self, db, user, identity, fake_aggregator):
        result = RegistrationCoordinator(fake_aggregator).ensure_provider_identity(db, user.id)

        assert result.created is False
        assert result.provider_user_id == "st-u1"
        assert result.provider_secret == "stored-secret"
        assert fake_aggregator.register_calls == 0

    def test_second_call_returns_same_identity(self, db, user, fake_aggregator):
        coordinator = RegistrationCoordinator(fake_aggregator)
        first = coordinator.ensure_provider_identity(db, user.id)
        second = coordinator.ensure_provider_identity(db, user.id)

        assert second.provider_secret == first.provider_secret
        assert second.created is False
        assert fake_aggregator.register_calls == 1

    def test_secret_is_encrypted_at_rest(self, db, user, fake_aggregator):
        result = RegistrationCoordinator(fake_aggregator).ensure_provider_identity(db, user.id)

        raw = db.execute(text("SELECT provider_secret FROM provider_identities")).scalar_one()
        assert raw != result.provider_secret
        assert result.provider_secret not in raw

    def test_not_configured_is_service_unavailable(self, db, user):
        aggregator = FakeAggregator(configured=False)

        with pytest.raises(FlintError) as exc_info:
            RegistrationCoordinator(aggregator).ensure_provider_identity(db, user.id)

        assert exc_info.value.code == ErrorCode.SERVICE_UNAVAILABLE
        assert aggregator.register_calls == 0


class TestConcurrentRegistration:
    def test_concurrent_callers_make_one_provider_call(self, file_db_factory):
        setup = file_db_factory()
        create_user(setup, "u1")
        setup.close()

        aggregator = FakeAggregator(register_delay=0.05)
        coordinator = RegistrationCoordinator(aggregator)
        callers = 8
        barrier = threading.Barrier(callers)

        def register():
            session = file_db_factory()
            try:
                barrier.wait()
                result = coordinator.ensure_provider_identity(session, "u1")
                return result.provider_user_id, result.provider_secret
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=callers) as pool:
            results = list(pool.map(lambda _: register(), range(callers)))

        assert aggregator.register_calls == 1
        assert len(set(results)) == 1
        check = file_db_factory()
        try:
            assert check.query(ProviderIdentity).filter_by(internal_user_id="u1").count() == 1
        finally:
            check.close()

    def test_waiting_callers_do_not_count_against_rate_limit(self, file_db_factory):
        setup = file_db_factory()
        create_user(setup, "u1")
        setup.close()

        aggregator = FakeAggregator(register_delay=0.1)
        limiter = RateLimiter(InMemoryTTLCache(), limit=2, window_seconds=60)
        coordinator = RegistrationCoordinator(aggregator, rate_limiter=limiter)
        callers = 8
        barrier = threading.Barrier(callers)

        def register():
            session = file_db_factory()
            try:
                barrier.wait()
                return coordinator.ensure_provider_identity(session, "u1").provider_user_id
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=callers) as pool:
            results = list(pool.map(lambda _: register(), range(callers)))

        assert results == ["u1"] * callers
        assert aggregator.register_calls == 1

    def test_different_users_do_not_share_identity(self, file_db_factory):
        setup = file_db_factory()
        for uid in ("a", "b", "c"):
            create_user(setup, uid)
        setup.close()

        aggregator = FakeAggregator(register_delay=0.02)
        coordinator = RegistrationCoordinator(aggregator)

        def register(uid):
            session = file_db_factory()
            try:
                return coordinator.ensure_provider_identity(session, uid).provider_user_id
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=3) as pool:
            results = list(pool.map(register, ["a", "b", "c"]))

        assert results == ["a", "b", "c"]
        assert aggregator.register_calls == 3


class TestOrphanRecovery:
    def test_existing_remote_identity_is_replaced(self, db, user, fake_aggregator):
        fake_aggregator.remote_identities["u1"] = "lost-secret"

        result = RegistrationCoordinator(fake_aggregator).ensure_provider_identity(db, user.id)

        assert result.recovered is True
        assert result.created is True
        assert fake_aggregator.deleted_identities == ["u1"]
        assert fake_aggregator.register_calls == 2
        assert db.query(ProviderIdentity).count() == 1
        assert CredentialStore().get_identity(db, user.id).provider_secret == result.provider_secret
        assert fake_aggregator.remote_identities["u1"] == result.provider_secret

    def test_failed_recovery_is_retryable(self, db, user, fake_aggregator):
        fake_aggregator.remote_identities["u1"] = "lost-secret"
        fake_aggregator.retry_register_error = ProviderAPIError("boom", status_code=500)

        with pytest.raises(FlintError) as exc_info:
            RegistrationCoordinator(fake_aggregator).ensure_provider_identity(db, user.id)

        assert exc_info.value.code == ErrorCode.SERVICE_UNAVAILABLE
        assert exc_info.value.retry_after == 30
        assert db.query(ProviderIdentity).count() == 0

    def test_failed_remote_delete_is_retryable(self, db, user, fake_aggregator):
        fake_aggregator.remote_identities["u1"] = "lost-secret"
        fake_aggregator.delete_error = ProviderConnectionError("timeout")

        with pytest.raises(FlintError) as exc_info:
            RegistrationCoordinator(fake_aggregator).ensure_provider_identity(db, user.id)

        assert exc_info.value.code == ErrorCode.SERVICE_UNAVAILABLE
        assert fake_aggregator.register_calls == 1


class TestFailureMapping:
    @pytest.mark.parametrize(
        "error, code",
        [
            (ProviderAuthError("bad signature"), ErrorCode.SERVICE_UNAVAILABLE),
            (ProviderConnectionError("timed out"), ErrorCode.SERVICE_UNAVAILABLE),
            (ProviderAPIError("server", status_code=502), ErrorCode.SERVICE_UNAVAILABLE),
            (ProviderAPIError("weird", status_code=400, error_code="9999"), ErrorCode.INTERNAL_ERROR),
        ],
    )
    def test_provider_errors_map_to_taxonomy(self, db, user, fake_aggregator, error, code):
        fake_aggregator.register_error = error

        with pytest.raises(FlintError) as exc_info:
            RegistrationCoordinator(fake_aggregator).ensure_provider_identity(db, user.id)

        assert exc_info.value.code == code
        assert db.query(ProviderIdentity).count() == 0

    def test_rate_limit_carries_retry_after(self, db, user, fake_aggregator):
        fake_aggregator.register_error = ProviderAPIError("slow down", status_code=429, retry_after=12)

        with pytest.raises(FlintError) as exc_info:
            RegistrationCoordinator(fake_aggregator).ensure_provider_identity(db, user.id)

        assert exc_info.value.code == ErrorCode.RATE_LIMITED
        assert exc_info.value.retry_after == 12

    def test_error_message_does_not_leak_provider_text(self, db, user, fake_aggregator):
        fake_aggregator.register_error = ProviderAuthError("consumer key ck_live_123 rejected")

        with pytest.raises(FlintError) as exc_info:
            RegistrationCoordinator(fake_aggregator).ensure_provider_identity(db, user.id)

        assert "ck_live_123" not in exc_info.value.message


class TestRateLimiting:
    def test_slow_path_attempts_are_limited(self, db, user, fake_aggregator):
        limiter = RateLimiter(InMemoryTTLCache(), limit=1, window_seconds=60)
        fake_aggregator.register_error = ProviderConnectionError("down")
        coordinator = RegistrationCoordinator(fake_aggregator, rate_limiter=limiter)

        with pytest.raises(FlintError) as first:
            coordinator.ensure_provider_identity(db, user.id)
        with pytest.raises(FlintError) as second:
            coordinator.ensure_provider_identity(db, user.id)

        assert first.value.code == ErrorCode.SERVICE_UNAVAILABLE
        assert second.value.code == ErrorCode.RATE_LIMITED
        assert fake_aggregator.register_calls == 1

    def test_fast_path_is_not_limited(self, db, user, identity, fake_aggregator):
        limiter = RateLimiter(InMemoryTTLCache(), limit=1, window_seconds=60)
        coordinator = RegistrationCoordinator(fake_aggregator, rate_limiter=limiter)

        for _ in range(5):
            coordinator.ensure_provider_identity(db, user.id)


class TestRotateSecret:
    def test_requires_identity(self, db, user, fake_aggregator):
        with pytest.raises(FlintError) as exc_info:
            RegistrationCoordinator(fake_aggregator).rotate_secret(db, user.id)
        assert exc_info.value.code == ErrorCode.NOT_REGISTERED

    def test_stores_new_secret(self, db, user, identity, fake_aggregator):
        result = RegistrationCoordinator(fake_aggregator).rotate_secret(db, user.id)
        db.commit()

        row = CredentialStore().get(db, user.id)
        assert result.provider_secret == "rotated-st-u1"
        assert row.provider_secret == "rotated-st-u1"
        assert row.rotated_at is not None


class TestRemoveIdentity:
    def test_removes_identity_connections_and_holdings(self, db, user, identity, fake_aggregator):
        create_connection(db, user.id)
        db.add(Holding(user_id=user.id, account_id="acct", symbol="AAPL"))
        db.commit()

        removed = RegistrationCoordinator(fake_aggregator).remove_identity(db, user.id)
        db.commit()

        assert removed is True
        assert fake_aggregator.deleted_identities == ["st-u1"]
        assert db.query(ProviderIdentity).count() == 0
        assert db.query(BrokerageConnection).count() == 0
        assert db.query(Holding).count() == 0

    def test_remote_failure_still_removes_locally(self, db, user, identity, fake_aggregator):
        fake_aggregator.delete_error = ProviderConnectionError("down")

        assert RegistrationCoordinator(fake_aggregator).remove_identity(db, user.id) is True
        assert db.query(ProviderIdentity).count() == 0

    def test_missing_identity(self, db, user, fake_aggregator):
        assert RegistrationCoordinator(fake_aggregator).remove_identity(db, user.id) is False
