"""Application-level exception types.

This module defines the errors the counter store surfaces to callers,
enabling consistent error handling and logging in the middleware that
consumes it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability.

    Fields are optional; each error fills in what it knows.
    """

    code: str
    message: str
    hint: str
    attempts: int
    max_attempts: int
    error_type: str
    key_hash: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for counter store failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class CounterStoreError(AppError):
    """Raised when the backing document store cannot complete an operation."""


class RetryExhaustedError(CounterStoreError):
    """Raised when an upsert kept failing until the retry policy gave up."""
