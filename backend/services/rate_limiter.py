"""Fixed-window rate limiter over an injected TTL cache."""

import itertools
import logging
import math

from config import settings
from services.errors import ErrorCode, FlintError
from utils.ttl_cache import InMemoryTTLCache, TTLCache

logger = logging.getLogger(__name__)


class RateLimiter:
    """Allow at most ``limit`` hits per key per ``window_seconds``."""

    def __init__(
        self,
        cache: TTLCache | None = None,
        limit: int | None = None,
        window_seconds: int | None = None,
        namespace: str = "ratelimit",
        purge_every: int = 500,
    ):
        self.cache = cache if cache is not None else InMemoryTTLCache()
        self.limit = limit if limit is not None else settings.REGISTER_RATE_LIMIT
        self.window_seconds = (
            window_seconds if window_seconds is not None else settings.REGISTER_RATE_WINDOW_SECONDS
        )
        self.namespace = namespace
        self.purge_every = purge_every
        self._hits = itertools.count(1)

    def hit(self, key: str) -> None:
        """Record one attempt for ``key``.

        Raises:
            FlintError: RATE_LIMITED with a retry-after hint once the
                window's limit is exceeded.
        """
        if next(self._hits) % self.purge_every == 0:
            purged = self.cache.purge_expired()
            if purged:
                logger.debug("Purged %d expired rate-limit entries", purged)
        cache_key = f"{self.namespace}:{key}"
        count = self.cache.increment(cache_key, self.window_seconds)
        if count <= self.limit:
            return
        remaining = self.cache.ttl(cache_key) or self.window_seconds
        retry_after = max(1, math.ceil(remaining))
        logger.info("Rate limit exceeded for %s (%d hits)", self.namespace, count)
        raise FlintError(
            ErrorCode.RATE_LIMITED,
            "Too many attempts. Please wait and try again.",
            retry_after=retry_after,
        )
