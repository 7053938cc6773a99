"""Tests for the SnapTrade payload normalizers."""

from datetime import datetime, timezone
from decimal import Decimal

from integrations.snaptrade_normalizers import (
    extract_authorization_id,
    extract_institution_name,
    extract_symbol,
    normalize_account,
    normalize_activity,
    normalize_authorizations,
    normalize_position,
)


class TestExtractAuthorizationId:
    def test_prefers_id(self):
        assert extract_authorization_id({"id": "a", "authorization_id": "b"}) == "a"

    def test_falls_back_in_order(self):
        assert extract_authorization_id({"authorizationId": "c"}) == "c"
        assert extract_authorization_id({"brokerageAuthorizationId": "d"}) == "d"

    def test_empty_string_is_missing(self):
        assert extract_authorization_id({"id": "", "authorization_id": "b"}) == "b"

    def test_nested_object(self):
        assert extract_authorization_id({"brokerage_authorization": {"id": "nested"}}) == "nested"

    def test_unresolvable(self):
        assert extract_authorization_id({"brokerage_authorization": {"name": "x"}}) is None
        assert extract_authorization_id({}) is None


class TestNormalizeAuthorizations:
    def test_dedupes_and_preserves_order(self):
        records = [{"id": "b"}, {"id": "a"}, {"id": "b"}]
        assert [a.authorization_id for a in normalize_authorizations(records)] == ["b", "a"]

    def test_disabled_aliases(self):
        result = normalize_authorizations([{"id": "a", "is_disabled": True}])
        assert result[0].disabled is True


class TestInstitutionName:
    def test_brokerage_object(self):
        assert extract_institution_name({"brokerage": {"display_name": "Robinhood"}}) == "Robinhood"

    def test_brokerage_string(self):
        assert extract_institution_name({"brokerage": "Fidelity"}) == "Fidelity"

    def test_unknown(self):
        assert extract_institution_name({}) == "Unknown"


class TestNormalizeAccount:
    def test_cash_and_buying_power_from_balances(self):
        record = {
            "id": "acct_1",
            "name": "Individual",
            "institution_name": "Robinhood",
            "balance": {"total": {"amount": 1500.5, "currency": "USD"}},
            "meta": {"type": "Margin"},
            "brokerage_authorization": "auth_1",
        }
        balances = [{"cash": 200, "buying_power": 400}, {"cash": "50.25"}]

        account = normalize_account(record, balances)

        assert account.id == "acct_1"
        assert account.total_value == Decimal("1500.5")
        assert account.cash == Decimal("250.25")
        assert account.buying_power == Decimal("400")
        assert account.account_type == "Margin"
        assert account.authorization_id == "auth_1"

    def test_missing_id(self):
        assert normalize_account({"name": "x"}) is None


class TestNormalizePosition:
    def test_nested_symbol(self):
        record = {
            "symbol": {"symbol": {"symbol": "VTI", "description": "Vanguard Total", "currency": {"code": "USD"}}},
            "units": "10",
            "price": 250.0,
            "average_purchase_price": "200",
        }

        position = normalize_position(record, "acct_1")

        assert position.symbol == "VTI"
        assert position.name == "Vanguard Total"
        assert position.units == Decimal("10")
        assert position.price == Decimal("250.0")
        assert position.average_purchase_price == Decimal("200")

    def test_without_symbol(self):
        assert normalize_position({"units": 1}, "acct_1") is None

    def test_extract_symbol_string(self):
        assert extract_symbol("AAPL") == "AAPL"
        assert extract_symbol({"symbol": "MSFT"}) == "MSFT"


class TestNormalizeActivity:
    def test_trade(self):
        record = {
            "id": "act_9",
            "trade_date": "2026-02-10",
            "type": "BUY",
            "units": "3",
            "price": "101.50",
            "amount": "-304.50",
            "account_id": "acct_2",
            "symbol": {"symbol": {"symbol": "AAPL"}},
            "currency": "CAD",
        }

        activity = normalize_activity(record)

        assert activity.external_id == "act_9"
        assert activity.account_id == "acct_2"
        assert activity.activity_date == datetime(2026, 2, 10, tzinfo=timezone.utc)
        assert activity.type == "buy"
        assert activity.symbol == "AAPL"
        assert activity.units == Decimal("3")
        assert activity.currency == "CAD"

    def test_missing_trade_date(self):
        assert normalize_activity({"id": "act_1", "type": "DIVIDEND"}) is None

    def test_missing_id(self):
        assert normalize_activity({"trade_date": "2026-02-10"}) is None
