"""Persistent hit counters for rate limiting middleware."""

from ratelimit_store.adapters.counter_store.atomic import AtomicCounterStore
from ratelimit_store.adapters.counter_store.base import AbstractCounterStore, HitResult
from ratelimit_store.adapters.document_store.in_memory import InMemoryCollection
from ratelimit_store.core.errors import AppError, CounterStoreError, RetryExhaustedError
from ratelimit_store.core.retry import RetryPolicy
from ratelimit_store.factory import create_store
from ratelimit_store.models.counter import CounterRecord, define_schema

__version__ = "0.1.0"

__all__ = [
    "AbstractCounterStore",
    "AppError",
    "AtomicCounterStore",
    "CounterRecord",
    "CounterStoreError",
    "HitResult",
    "InMemoryCollection",
    "RetryExhaustedError",
    "RetryPolicy",
    "create_store",
    "define_schema",
    "__version__",
]
