"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets TESTING so no .env file is loaded while the settings module is
imported, and pins the store to the in-memory backend.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("RATELIMIT_BACKEND", "memory")

import pytest  # noqa: E402

from ratelimit_store.adapters.counter_store.atomic import AtomicCounterStore  # noqa: E402
from ratelimit_store.adapters.document_store.in_memory import InMemoryCollection  # noqa: E402
from ratelimit_store.core.retry import RetryPolicy  # noqa: E402


class FakeClock:
    """Deterministic clock used to test expiration logic."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def collection(clock: FakeClock) -> InMemoryCollection:
    return InMemoryCollection("ratelimits", clock=clock)


@pytest.fixture
def store(collection: InMemoryCollection) -> AtomicCounterStore:
    return AtomicCounterStore(
        collection,
        window_ms=60000,
        retry_policy=RetryPolicy(max_attempts=10, base_delay=0.0, jitter=0.0),
    )
