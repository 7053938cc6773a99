"""Errors raised by the bank provider and brokerage aggregator clients.

Clients translate SDK and HTTP failures into these before they leave the
``integrations`` package. Every error answers :attr:`ProviderError.retriable`
so services can decide between "try again later" and "this will not work".
"""


class ProviderError(Exception):
    """A provider call failed. ``provider_name`` says which provider."""

    retriable = False

    def __init__(self, message: str, provider_name: str = ""):
        super().__init__(message)
        self.provider_name = provider_name


class ProviderAuthError(ProviderError):
    """Rejected credentials: HTTP 401/403, bad signature, expired grant."""


class ProviderConnectionError(ProviderError):
    """The provider could not be reached (timeout, DNS, refused connection)."""

    def __init__(self, message: str, provider_name: str = "", retriable: bool = True):
        super().__init__(message, provider_name)
        self.retriable = retriable


class ProviderAPIError(ProviderError):
    """The provider answered with an error status.

    ``error_code`` is the provider's own code from the response body when
    it sends one (SnapTrade reports an existing user as ``"1010"``).
    ``retry_after`` is the provider's Retry-After value in seconds.
    """

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        status_code: int | None = None,
        error_code: str | None = None,
        retry_after: int | None = None,
    ):
        super().__init__(message, provider_name)
        self.status_code = status_code
        self.error_code = error_code
        self.retry_after = retry_after

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def retriable(self) -> bool:
        return self.status_code is not None and (self.is_rate_limited or self.status_code >= 500)


class ProviderDataError(ProviderError):
    """The response could not be parsed into the expected shape."""
