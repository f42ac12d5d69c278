"""Retry policy for counter upserts.

The first retry of a failed upsert only yields to the event loop so that a
losing racer re-runs right after the winner committed. Later retries back
off exponentially, capped at ``max_delay``, with optional jitter.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable

from ratelimit_store.core.config import RetrySettings


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently a failed upsert is retried.

    Attributes:
        max_attempts: Total attempts per operation, or None for no limit.
        base_delay: Delay in seconds before the second retry.
        max_delay: Upper bound in seconds for a single delay.
        multiplier: Growth factor between consecutive delays.
        jitter: Random fraction of the delay added on top of it.
    """

    max_attempts: int | None = 10
    base_delay: float = 0.01
    max_delay: float = 1.0
    multiplier: float = 2.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1 or None")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be >= 0")
        if self.multiplier < 1:
            raise ValueError("multiplier must be >= 1")
        if self.jitter < 0:
            raise ValueError("jitter must be >= 0")

    @classmethod
    def from_settings(cls, retry_settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_attempts=retry_settings.max_attempts,
            base_delay=retry_settings.base_delay_seconds,
            max_delay=retry_settings.max_delay_seconds,
            multiplier=retry_settings.multiplier,
            jitter=retry_settings.jitter,
        )

    @classmethod
    def unlimited(cls) -> "RetryPolicy":
        """Retry forever, deferring each attempt to the next loop turn."""
        return cls(max_attempts=None, base_delay=0.0, max_delay=0.0, jitter=0.0)

    def should_retry(self, attempt: int) -> bool:
        """Whether another attempt may follow the failed ``attempt`` (1-based)."""
        return self.max_attempts is None or attempt < self.max_attempts

    def delay_for(
        self,
        attempt: int,
        *,
        random_fn: Callable[[], float] | None = None,
    ) -> float:
        """Delay in seconds to wait after the failed ``attempt`` (1-based).

        Args:
            attempt: Number of the attempt that just failed.
            random_fn: Source of randomness in [0, 1) used for jitter.

        Returns:
            0.0 after the first failure, an exponentially growing delay after.
        """
        if attempt <= 1 or self.base_delay <= 0:
            return 0.0

        delay = min(self.base_delay * (self.multiplier ** (attempt - 2)), self.max_delay)

        if self.jitter > 0 and delay > 0:
            rng = random_fn or random.random
            delay += delay * self.jitter * rng()

        return float(delay)
