"""Counter store interfaces.

Middleware should depend on this abstraction (not the concrete
implementation) so the backing store can be swapped with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

HitCallback = Callable[[Optional[BaseException], Optional[int], Optional[datetime]], Any]


@dataclass(frozen=True)
class HitResult:
    """Outcome of a counter operation.

    Attributes:
        hits: Hit count for the key after the operation.
        reset_time: When the key's window expires if it is not hit again.
    """

    hits: int
    reset_time: datetime


class AbstractCounterStore(ABC):
    """Interface for windowed hit counters."""

    @abstractmethod
    async def increment(self, key: str, callback: HitCallback | None = None) -> HitResult:
        """Add one hit for ``key``.

        Args:
            key: Unique client identifier (e.g., IP address).
            callback: Optional ``callback(error, hits, reset_time)`` invoked
                exactly once when the operation completes.

        Returns:
            HitResult with the updated count and reset time.
        """
        raise NotImplementedError

    @abstractmethod
    async def decrement(self, key: str, callback: HitCallback | None = None) -> HitResult:
        """Remove one hit for ``key``. The count is not floored at zero."""
        raise NotImplementedError

    @abstractmethod
    async def reset_key(self, key: str, callback: HitCallback | None = None) -> HitResult:
        """Set the hit count for ``key`` to zero."""
        raise NotImplementedError
