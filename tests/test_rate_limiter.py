"""Tests for the token bucket rate limiter."""

import pytest
from fastapi import HTTPException

from genius_writer.core.errors import RateLimitedError
from genius_writer.core.rate_limiter import RateLimiter


class ManualClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(burst_size=2, refill_per_second=0.5, clock=clock)


def test_burst_then_refuse(limiter):
    assert limiter.try_acquire("k")
    assert limiter.try_acquire("k")
    assert not limiter.try_acquire("k")


def test_refill_over_time(limiter, clock):
    limiter.try_acquire("k")
    limiter.try_acquire("k")
    clock.now += 2
    assert limiter.try_acquire("k")
    assert not limiter.try_acquire("k")


def test_keys_are_independent(limiter):
    limiter.try_acquire("a")
    limiter.try_acquire("a")
    assert limiter.try_acquire("b")


def test_acquire_raises_typed_error(limiter):
    limiter.acquire("k")
    limiter.acquire("k")
    with pytest.raises(RateLimitedError) as exc_info:
        limiter.acquire("k")
    assert exc_info.value.retry_after == 3
    assert exc_info.value.kind.value == "quota"


def test_check_limit_raises_429(limiter):
    limiter.check_limit("caller")
    limiter.check_limit("caller")
    with pytest.raises(HTTPException) as exc_info:
        limiter.check_limit("caller")
    assert exc_info.value.status_code == 429
    assert exc_info.value.detail["error"] == "rate_limited"
    assert exc_info.value.headers == {"Retry-After": "3"}


def test_stats_and_reset(limiter):
    limiter.try_acquire("k")
    stats = limiter.get_stats("k")
    assert stats["tokens_remaining"] == 1
    assert stats["total_requests"] == 1

    limiter.reset("k")
    assert limiter.get_stats("k")["tokens_remaining"] == 2
