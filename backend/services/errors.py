"""Application error taxonomy.

Provider exceptions are normalized into :class:`FlintError` at the service
boundary; the API layer renders a FlintError as the standard JSON error body.
"""

import logging
from enum import Enum

from integrations.exceptions import (
    ProviderAPIError,
    ProviderAuthError,
    ProviderError,
)

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Error codes surfaced to API clients."""

    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_REGISTERED = "NOT_REGISTERED"
    USER_MISMATCH = "USER_MISMATCH"
    ORPHANED_IDENTITY = "ORPHANED_IDENTITY"
    RATE_LIMITED = "RATE_LIMITED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONNECTION_LIMIT = "CONNECTION_LIMIT"
    NOT_YET_VISIBLE = "NOT_YET_VISIBLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.NOT_REGISTERED: 428,
    ErrorCode.USER_MISMATCH: 409,
    ErrorCode.ORPHANED_IDENTITY: 409,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONNECTION_LIMIT: 403,
    ErrorCode.NOT_YET_VISIBLE: 404,
    ErrorCode.INTERNAL_ERROR: 500,
}

RETRYABLE_CODES = frozenset(
    {ErrorCode.RATE_LIMITED, ErrorCode.SERVICE_UNAVAILABLE, ErrorCode.NOT_YET_VISIBLE}
)


class FlintError(Exception):
    """An error with a taxonomy code and a message safe to show to the user."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        retry_after: int | None = None,
        details: dict | None = None,
    ):
        self.code = code
        self.message = message
        self.retry_after = retry_after
        self.details = details or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.code]

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_CODES

    def __repr__(self) -> str:
        return f"FlintError({self.code.value}, {self.message!r})"


def normalize_provider_error(exc: Exception, action: str = "contact the provider") -> FlintError:
    """Map a provider exception onto the taxonomy.

    Messages are generic on purpose: provider error text can echo request
    parameters, so it is logged by the caller, never returned.
    """
    if isinstance(exc, FlintError):
        return exc
    if isinstance(exc, ProviderAuthError):
        return FlintError(
            ErrorCode.SERVICE_UNAVAILABLE,
            f"Unable to {action} right now. Please try again later.",
        )
    if isinstance(exc, ProviderAPIError) and exc.is_rate_limited:
        return FlintError(
            ErrorCode.RATE_LIMITED,
            "Too many requests to the provider. Please wait and try again.",
            retry_after=exc.retry_after or 60,
        )
    if isinstance(exc, ProviderError) and exc.retriable:
        return FlintError(
            ErrorCode.SERVICE_UNAVAILABLE,
            f"Unable to {action} right now. Please try again later.",
        )
    if isinstance(exc, ProviderError):
        return FlintError(
            ErrorCode.INTERNAL_ERROR,
            f"Failed to {action}.",
        )
    return FlintError(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred.")
