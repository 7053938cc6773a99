"""SnapTrade API client wrapper.

Implements the AggregatorProvider protocol on top of the ``snaptrade_client``
SDK. Unlike a single-user setup, the per-user credentials are passed on
every call: the client itself only holds the partner credentials, so a
rotated user secret is always read fresh from the credential store.

Every SDK call runs with a bounded timeout and every SDK failure is mapped
to the typed provider exceptions in :mod:`integrations.exceptions`.
"""

import json
import logging
from datetime import date, timedelta
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable

import urllib3
from snaptrade_client import SnapTrade
from snaptrade_client.exceptions import ApiException

from config import settings
from integrations.aggregator_protocol import (
    AggregatorIdentity,
    BrokerageAccount,
    BrokerageActivity,
    BrokeragePosition,
)
from integrations.exceptions import (
    ProviderAPIError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderDataError,
)
from integrations.parsing_utils import get_field
from integrations.snaptrade_normalizers import (
    normalize_account,
    normalize_activity,
    normalize_position,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "SnapTrade"

# SnapTrade error codes for request-signature / partner-key failures
SIGNATURE_ERROR_CODES = frozenset({"1076", "1083"})

# "User already exists" on registration
USER_EXISTS_ERROR_CODE = "1010"


def _parse_error_body(body: Any) -> dict:
    if body is None:
        return {}
    if isinstance(body, dict):
        return body
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    try:
        parsed = json.loads(body)
    except (TypeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _retry_after(headers: Any) -> int | None:
    value = get_field(headers, "Retry-After") or get_field(headers, "retry-after")
    if value is None:
        return None
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError):
        return None


def map_api_exception(exc: ApiException) -> Exception:
    """Map an SDK ApiException to a typed provider exception.

    The message never includes the request itself, so user secrets cannot
    leak into logs or API responses.
    """
    status = getattr(exc, "status", None)
    body = _parse_error_body(getattr(exc, "body", None))
    code = body.get("code")
    code = str(code) if code is not None else None
    detail = body.get("detail") or getattr(exc, "reason", None) or "SnapTrade request failed"

    if status in (401, 403) or code in SIGNATURE_ERROR_CODES:
        return ProviderAuthError(
            f"SnapTrade rejected the request ({status}, code {code}): {detail}",
            provider_name=PROVIDER_NAME,
        )
    return ProviderAPIError(
        f"SnapTrade error ({status}, code {code}): {detail}",
        provider_name=PROVIDER_NAME,
        status_code=status,
        error_code=code,
        retry_after=_retry_after(getattr(exc, "headers", None)),
    )


def _body(response: Any) -> Any:
    """SDK responses wrap the payload in ``.body``; plain values pass through."""
    if isinstance(response, (dict, list)):
        return response
    return getattr(response, "body", response)


class SnapTradeClient:
    """Wrapper around the SnapTrade SDK."""

    def __init__(
        self,
        client_id: str | None = None,
        consumer_key: str | None = None,
        timeout: float | None = None,
        sdk: Any = None,
    ):
        """Initialize the client with partner credentials.

        Args:
            client_id: SnapTrade client ID (defaults to settings)
            consumer_key: SnapTrade consumer key (defaults to settings)
            timeout: Seconds allowed per call (defaults to settings)
            sdk: Pre-built SDK object, for tests
        """
        self._client_id = client_id or settings.SNAPTRADE_CLIENT_ID
        self._consumer_key = consumer_key or settings.SNAPTRADE_CONSUMER_KEY
        self._timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self._executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="snaptrade")
        self.client = sdk or SnapTrade(
            consumer_key=self._consumer_key,
            client_id=self._client_id,
        )

    @property
    def provider_name(self) -> str:
        return PROVIDER_NAME

    def is_configured(self) -> bool:
        """True if partner credentials are present."""
        return bool(self._client_id and self._consumer_key)

    def _check_credentials(self) -> None:
        if not self.is_configured():
            raise ProviderAuthError(
                "SnapTrade API credentials not configured. "
                "Set SNAPTRADE_CLIENT_ID and SNAPTRADE_CONSUMER_KEY in .env",
                provider_name=PROVIDER_NAME,
            )

    def _call(self, operation: str, fn: Callable[[], Any]) -> Any:
        """Run one SDK call with the configured timeout and error mapping."""
        self._check_credentials()
        future = self._executor.submit(fn)
        try:
            return _body(future.result(timeout=self._timeout))
        except FutureTimeoutError as e:
            future.cancel()
            raise ProviderConnectionError(
                f"SnapTrade {operation} timed out after {self._timeout:g}s",
                provider_name=PROVIDER_NAME,
            ) from e
        except ApiException as e:
            raise map_api_exception(e) from e
        except (urllib3.exceptions.HTTPError, OSError) as e:
            raise ProviderConnectionError(
                f"SnapTrade {operation} failed: {type(e).__name__}",
                provider_name=PROVIDER_NAME,
            ) from e

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def register_identity(self, internal_user_id: str) -> AggregatorIdentity:
        """Register a SnapTrade user for ``internal_user_id``.

        Raises:
            ProviderAPIError: with ``error_code == "1010"`` if SnapTrade
                already has a user with this id.
        """
        data = self._call(
            "register",
            lambda: self.client.authentication.register_snap_trade_user(
                user_id=internal_user_id,
            ),
        )
        user_id = get_field(data, "userId")
        user_secret = get_field(data, "userSecret")
        if not user_id or not user_secret:
            raise ProviderDataError(
                "SnapTrade registration response missing userId/userSecret",
                provider_name=PROVIDER_NAME,
            )
        return AggregatorIdentity(provider_user_id=str(user_id), provider_secret=str(user_secret))

    def delete_identity(self, provider_user_id: str) -> None:
        """Delete a SnapTrade user. Deletion is processed asynchronously by SnapTrade."""
        self._call(
            "delete user",
            lambda: self.client.authentication.delete_snap_trade_user(
                user_id=provider_user_id,
            ),
        )

    def reset_secret(self, provider_user_id: str, provider_secret: str) -> str:
        """Rotate the user secret and return the new one."""
        data = self._call(
            "reset secret",
            lambda: self.client.authentication.reset_snap_trade_user_secret(
                user_id=provider_user_id,
                user_secret=provider_secret,
            ),
        )
        new_secret = get_field(data, "userSecret")
        if not new_secret:
            raise ProviderDataError(
                "SnapTrade secret reset response missing userSecret",
                provider_name=PROVIDER_NAME,
            )
        return str(new_secret)

    def login_url(
        self,
        provider_user_id: str,
        provider_secret: str,
        reconnect_authorization_id: str | None = None,
    ) -> str:
        """Connection-portal URL, optionally in reconnect mode for one authorization."""
        kwargs: dict[str, Any] = {
            "user_id": provider_user_id,
            "user_secret": provider_secret,
            "connection_type": "read",
        }
        if settings.SNAPTRADE_REDIRECT_URI:
            kwargs["custom_redirect"] = settings.SNAPTRADE_REDIRECT_URI
        if reconnect_authorization_id:
            kwargs["reconnect"] = reconnect_authorization_id

        data = self._call(
            "login",
            lambda: self.client.authentication.login_snap_trade_user(**kwargs),
        )
        url = get_field(data, "redirectURI") or get_field(data, "loginRedirectURI")
        if not url:
            raise ProviderDataError(
                "SnapTrade login response missing redirectURI",
                provider_name=PROVIDER_NAME,
            )
        return str(url)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def list_authorizations(self, provider_user_id: str, provider_secret: str) -> list[Any]:
        """Raw brokerage authorization records, in provider order."""
        data = self._call(
            "list authorizations",
            lambda: self.client.connections.list_brokerage_authorizations(
                user_id=provider_user_id,
                user_secret=provider_secret,
            ),
        )
        return list(data or [])

    def remove_authorization(
        self, provider_user_id: str, provider_secret: str, authorization_id: str
    ) -> None:
        self._call(
            "remove authorization",
            lambda: self.client.connections.remove_brokerage_authorization(
                authorization_id=authorization_id,
                user_id=provider_user_id,
                user_secret=provider_secret,
            ),
        )

    # ------------------------------------------------------------------
    # Account data
    # ------------------------------------------------------------------

    def list_accounts(self, provider_user_id: str, provider_secret: str) -> list[BrokerageAccount]:
        """All accounts for the user with cash and buying power resolved."""
        raw_accounts = self._call(
            "list accounts",
            lambda: self.client.account_information.list_user_accounts(
                user_id=provider_user_id,
                user_secret=provider_secret,
            ),
        )

        result = []
        for raw in raw_accounts or []:
            account_id = get_field(raw, "id")
            if not account_id:
                logger.warning("Skipping SnapTrade account without id")
                continue
            balances = self._call(
                "account balance",
                lambda: self.client.account_information.get_user_account_balance(
                    user_id=provider_user_id,
                    user_secret=provider_secret,
                    account_id=str(account_id),
                ),
            )
            account = normalize_account(raw, balances)
            if account is not None:
                result.append(account)
        return result

    def get_positions(
        self, provider_user_id: str, provider_secret: str, account_id: str
    ) -> list[BrokeragePosition]:
        data = self._call(
            "positions",
            lambda: self.client.account_information.get_user_account_positions(
                user_id=provider_user_id,
                user_secret=provider_secret,
                account_id=account_id,
            ),
        )
        positions = []
        for raw in data or []:
            position = normalize_position(raw, account_id)
            if position is None:
                logger.debug("Skipping SnapTrade position without symbol in %s", account_id)
                continue
            positions.append(position)
        return positions

    def list_activities(
        self,
        provider_user_id: str,
        provider_secret: str,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[BrokerageActivity]:
        """Activities across all accounts, the last 90 days by default."""
        end_date = end_date or date.today()
        start_date = start_date or end_date - timedelta(days=90)
        data = self._call(
            "activities",
            lambda: self.client.transactions_and_reporting.get_activities(
                user_id=provider_user_id,
                user_secret=provider_secret,
                start_date=str(start_date),
                end_date=str(end_date),
            ),
        )
        activities = []
        for raw in data or []:
            activity = normalize_activity(raw)
            if activity is None:
                logger.debug("Skipping SnapTrade activity without id or trade date")
                continue
            activities.append(activity)
        return activities
