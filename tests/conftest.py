"""Pytest configuration and fixtures."""

import os
from datetime import datetime, timedelta, timezone

import pytest

from genius_writer.db.storage import MemoryStorage


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["WRITER_ENV"] = "test"
    os.environ["GENERATION_API_URL"] = "http://writer.test/v1"
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"


class FakeClock:
    """Settable clock for time-dependent stores."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage(capacity_bytes=1_000_000)
