"""Simple in-memory token bucket rate limiter.

Used on both sides of the generation API: the client checks it before a
request leaves (try_acquire), the reference server checks it per caller
and answers 429 (check_limit).
"""

import time
from typing import Any, Callable, Dict, Tuple

from fastapi import HTTPException

from genius_writer.core.config import Settings, get_settings
from genius_writer.core.errors import RateLimitedError
from genius_writer.core.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Token bucket rate limiter.

    Tracks tokens per key (e.g., tool id or caller) and enforces limits.
    """

    def __init__(
        self,
        burst_size: int = 5,
        refill_per_second: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize rate limiter.

        Args:
            burst_size: Maximum tokens in a bucket
            refill_per_second: Tokens added per second
            clock: Monotonic time source
        """
        self.burst_size = burst_size
        self.refill_rate = refill_per_second
        self.clock = clock

        # key -> (tokens, last_refill_time)
        self._buckets: Dict[str, Tuple[float, float]] = {}
        self._request_counts: Dict[str, int] = {}

    def _refill_bucket(self, key: str) -> float:
        now = self.clock()
        current_tokens, last_refill = self._buckets.get(key, (float(self.burst_size), now))
        new_tokens = min(self.burst_size, current_tokens + (now - last_refill) * self.refill_rate)
        self._buckets[key] = (new_tokens, now)
        return new_tokens

    def retry_after(self, key: str, cost: float = 1.0) -> int:
        """Seconds until `cost` tokens are available."""
        current_tokens = self._refill_bucket(key)
        if current_tokens >= cost:
            return 0
        return int((cost - current_tokens) / self.refill_rate) + 1

    def try_acquire(self, key: str = "global", cost: float = 1.0) -> bool:
        """
        Consume tokens if available.

        Args:
            key: Rate limit key
            cost: Token cost for this request (default 1.0)

        Returns:
            True if allowed, False if rate limited
        """
        current_tokens = self._refill_bucket(key)
        if current_tokens < cost:
            return False

        _, last_refill = self._buckets[key]
        self._buckets[key] = (current_tokens - cost, last_refill)
        self._request_counts[key] = self._request_counts.get(key, 0) + 1
        return True

    def acquire(self, key: str = "global", cost: float = 1.0) -> None:
        """
        Client-side check before a request is issued.

        Raises:
            RateLimitedError: If the bucket is empty
        """
        if not self.try_acquire(key, cost):
            retry_after = self.retry_after(key, cost)
            logger.warning(f"Client rate limit hit for key: {key}, retry after: {retry_after}s")
            raise RateLimitedError(
                f"Client rate limit exceeded for {key}", retry_after=retry_after
            )

    def check_limit(self, key: str, cost: float = 1.0) -> bool:
        """
        Server-side check.

        Raises:
            HTTPException: 429 if rate limited
        """
        if self.try_acquire(key, cost):
            return True

        retry_after = self.retry_after(key, cost)
        current_tokens, _ = self._buckets[key]
        logger.warning(
            f"Rate limit exceeded for key: {key}, "
            f"tokens: {current_tokens:.2f}/{self.burst_size}, "
            f"retry after: {retry_after}s"
        )
        raise HTTPException(
            status_code=429,
            detail={
                "error": "rate_limited",
                "message": f"Rate limit exceeded. Try again in {retry_after} seconds.",
            },
            headers={"Retry-After": str(retry_after)},
        )

    def get_stats(self, key: str) -> Dict[str, Any]:
        current_tokens = self._refill_bucket(key)
        return {
            "tokens_remaining": int(current_tokens),
            "burst_size": self.burst_size,
            "refill_per_second": self.refill_rate,
            "total_requests": self._request_counts.get(key, 0),
        }

    def reset(self, key: str) -> None:
        self._buckets.pop(key, None)
        self._request_counts.pop(key, None)
        logger.info(f"Rate limit reset for key: {key}")


def build_rate_limiter(settings: Settings | None = None) -> RateLimiter:
    settings = settings or get_settings()
    return RateLimiter(
        burst_size=settings.RATE_LIMIT_BURST,
        refill_per_second=settings.RATE_LIMIT_PER_SECOND,
    )
