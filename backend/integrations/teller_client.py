"""Teller API client wrapper.

Implements the BankProvider protocol. Teller authenticates each request
with the enrollment's access token as the HTTP basic-auth username, and
(outside sandbox) requires a client TLS certificate.
"""

import logging
from decimal import Decimal
from typing import Any

import httpx

from config import settings
from integrations.aggregator_protocol import BankAccount, BankBalance, BankTransaction
from integrations.exceptions import (
    ProviderAPIError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderDataError,
)
from integrations.parsing_utils import parse_date, parse_decimal

logger = logging.getLogger(__name__)

PROVIDER_NAME = "Teller"


class TellerClient:
    """Wrapper around the Teller REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        cert_path: str | None = None,
        key_path: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Teller API base URL (defaults to settings)
            cert_path: Client certificate path (defaults to settings)
            key_path: Client key path (defaults to settings)
            timeout: Seconds allowed per request (defaults to settings)
            transport: Custom httpx transport, for tests
        """
        self._base_url = base_url or settings.TELLER_BASE_URL
        self._cert_path = cert_path if cert_path is not None else settings.TELLER_CERT_PATH
        self._key_path = key_path if key_path is not None else settings.TELLER_KEY_PATH
        self._timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def provider_name(self) -> str:
        return PROVIDER_NAME

    def _client(self) -> httpx.Client:
        kwargs: dict[str, Any] = {"base_url": self._base_url, "timeout": self._timeout}
        if self._cert_path and self._key_path:
            kwargs["cert"] = (self._cert_path, self._key_path)
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.Client(**kwargs)

    def _get(self, access_token: str, path: str, params: dict | None = None) -> Any:
        try:
            with self._client() as client:
                response = client.get(path, params=params, auth=(access_token, ""))
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise ProviderAuthError(
                    f"Teller authentication failed (HTTP {status})",
                    provider_name=PROVIDER_NAME,
                ) from exc
            retry_after = exc.response.headers.get("Retry-After")
            raise ProviderAPIError(
                f"Teller API error (HTTP {status})",
                provider_name=PROVIDER_NAME,
                status_code=status,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderConnectionError(
                f"Teller connection failed: {type(exc).__name__}",
                provider_name=PROVIDER_NAME,
            ) from exc
        except ValueError as exc:
            raise ProviderDataError(
                f"Teller returned invalid JSON for {path}",
                provider_name=PROVIDER_NAME,
            ) from exc

    @staticmethod
    def _map_account(data: dict) -> BankAccount:
        if not isinstance(data, dict) or not data.get("id"):
            raise ProviderDataError("Teller account without id", provider_name=PROVIDER_NAME)
        institution = data.get("institution") or {}
        return BankAccount(
            id=data["id"],
            name=data.get("name") or "Account",
            institution_name=institution.get("name") or "Unknown Bank",
            type=data.get("type") or "depository",
            subtype=data.get("subtype"),
            last_four=data.get("last_four"),
            currency=data.get("currency") or "USD",
            enrollment_id=data.get("enrollment_id"),
            status=data.get("status"),
        )

    def list_accounts(self, access_token: str) -> list[BankAccount]:
        data = self._get(access_token, "/accounts")
        if not isinstance(data, list):
            raise ProviderDataError("Teller /accounts did not return a list", provider_name=PROVIDER_NAME)
        return [self._map_account(item) for item in data]

    def get_account(self, access_token: str, account_id: str) -> BankAccount:
        return self._map_account(self._get(access_token, f"/accounts/{account_id}"))

    def get_balances(self, access_token: str, account_id: str) -> BankBalance:
        data = self._get(access_token, f"/accounts/{account_id}/balances")
        if not isinstance(data, dict):
            raise ProviderDataError("Teller balances is not an object", provider_name=PROVIDER_NAME)
        return BankBalance(
            account_id=account_id,
            ledger=parse_decimal(data.get("ledger")),
            available=parse_decimal(data.get("available")),
        )

    def get_transactions(
        self, access_token: str, account_id: str, count: int | None = None
    ) -> list[BankTransaction]:
        params = {"count": count} if count else None
        data = self._get(access_token, f"/accounts/{account_id}/transactions", params=params)
        if not isinstance(data, list):
            raise ProviderDataError("Teller transactions is not a list", provider_name=PROVIDER_NAME)

        transactions = []
        for item in data:
            txn_date = parse_date(item.get("date"))
            if not item.get("id") or txn_date is None:
                continue
            details = item.get("details") or {}
            counterparty = details.get("counterparty") or {}
            transactions.append(
                BankTransaction(
                    id=item["id"],
                    account_id=item.get("account_id") or account_id,
                    date=txn_date,
                    amount=parse_decimal(item.get("amount"), Decimal("0")),
                    description=item.get("description") or "",
                    merchant_name=counterparty.get("name"),
                    category=details.get("category"),
                    status=item.get("status"),
                )
            )
        return transactions
