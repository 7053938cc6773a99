"""Tests for scripts.cleanup_orphaned_identities."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

from integrations.aggregator_protocol import BrokerageAccount
from models import ProviderIdentity
from scripts.cleanup_orphaned_identities import dry_run, main
from tests.fixtures import create_identity, create_user
from tests.fixtures.mocks import FakeAggregator


def _patched(db, aggregator):
    return (
        patch("scripts.cleanup_orphaned_identities.SnapTradeClient", return_value=aggregator),
        patch("scripts.cleanup_orphaned_identities.get_session_local", return_value=lambda: db),
        patch("scripts.cleanup_orphaned_identities.setup_logging"),
    )


class TestMain:
    def test_removes_orphans(self, db, identity, capsys):
        aggregator = FakeAggregator()
        client_patch, session_patch, logging_patch = _patched(db, aggregator)

        with client_patch, session_patch, logging_patch, patch(
            "sys.argv", ["cleanup_orphaned_identities", "--min-age-hours", "0"]
        ):
            assert main() == 0

        assert aggregator.deleted_identities == ["st-u1"]
        assert db.query(ProviderIdentity).count() == 0
        assert "Removed locally:  1" in capsys.readouterr().out

    def test_not_configured(self, db, capsys):
        client_patch, session_patch, logging_patch = _patched(db, FakeAggregator(configured=False))

        with client_patch, session_patch, logging_patch, patch(
            "sys.argv", ["cleanup_orphaned_identities"]
        ):
            assert main() == 1

        assert "must be set" in capsys.readouterr().out


class TestDryRun:
    def test_lists_candidates_without_deleting(self, db, capsys):
        create_user(db, "a")
        create_user(db, "b")
        create_identity(db, "a")
        create_identity(db, "b")
        aggregator = FakeAggregator()
        aggregator.accounts_by_user["b"] = [
            BrokerageAccount(id="acct", name="Individual", institution_name="Robinhood", total_value=Decimal("1"))
        ]

        with patch("scripts.cleanup_orphaned_identities.get_session_local", return_value=lambda: db):
            assert dry_run(aggregator, timedelta(0)) == 0

        output = capsys.readouterr().out
        assert "- a: no accounts" in output
        assert "b: no accounts" not in output
        assert "1 identities" in output
        assert aggregator.deleted_identities == []
        assert db.query(ProviderIdentity).count() == 2
