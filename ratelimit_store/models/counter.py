"""Counter record model and index schema.

A counter document looks like::

    {"key": "127.0.0.1", "hits": 3, "createdAt": ..., "updatedAt": ...}

The schema is a plain description of the indexes the backing store must
carry; applying it is the store adapter's job.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_WINDOW_MS = 60000
DEFAULT_MODEL_NAME = "RateLimit"

ASCENDING = 1


class CounterRecord(BaseModel):
    """Typed view of a stored counter document."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key: str = Field(..., min_length=1, description="Client identifier, e.g. an IP address.")
    hits: int = Field(1, description="Hits recorded in the current window. May be negative.")
    updated_at: datetime = Field(..., alias="updatedAt", description="Last write time.")
    created_at: datetime | None = Field(None, alias="createdAt", description="Insert time.")

    @field_validator("key")
    @classmethod
    def _strip_key(cls, value: str) -> str:
        return value.strip()

    def reset_time(self, window_ms: int) -> datetime:
        """When this record expires if it is not written again."""
        return self.updated_at + timedelta(milliseconds=window_ms)


@dataclass(frozen=True)
class IndexSpec:
    """A single index declaration.

    Attributes:
        keys: Ordered (field, direction) pairs.
        unique: Whether the index rejects duplicate values.
        expire_after_seconds: TTL in seconds for a date field, or None.
    """

    keys: tuple[tuple[str, int], ...]
    unique: bool = False
    expire_after_seconds: int | None = None

    @property
    def name(self) -> str:
        # Same naming scheme MongoDB uses for unnamed indexes
        return "_".join(f"{name}_{direction}" for name, direction in self.keys)

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.keys)


@dataclass(frozen=True)
class CounterSchema:
    """Index layout for counter documents at a given window length."""

    window_ms: int
    indexes: tuple[IndexSpec, ...] = field(default_factory=tuple)

    @property
    def expire_after_seconds(self) -> int:
        return ttl_seconds(self.window_ms)

    def unique_indexes(self) -> tuple[IndexSpec, ...]:
        return tuple(index for index in self.indexes if index.unique)


def ttl_seconds(window_ms: int) -> int:
    """TTL for a window, in whole seconds as MongoDB requires (at least 1)."""
    return max(1, math.ceil(window_ms / 1000))


def define_schema(window_ms: int = DEFAULT_WINDOW_MS) -> CounterSchema:
    """Build the counter schema for a window length.

    The schema carries:
    - a unique index on ``key`` (one live record per client),
    - an index on ``hits``,
    - a TTL index expiring ``updatedAt`` after the window,
    - an index on ``(createdAt, updatedAt)``,
    - a unique index on ``(key, hits)`` so racing duplicate inserts fail.

    Args:
        window_ms: How long in milliseconds to keep records of requests.

    Returns:
        CounterSchema describing every index to create.

    Raises:
        ValueError: If window_ms is not a positive integer.
    """
    if isinstance(window_ms, bool) or not isinstance(window_ms, int) or window_ms < 1:
        raise ValueError("window_ms must be a positive integer")

    indexes = (
        IndexSpec(keys=(("key", ASCENDING),), unique=True),
        IndexSpec(keys=(("hits", ASCENDING),)),
        IndexSpec(keys=(("updatedAt", ASCENDING),), expire_after_seconds=ttl_seconds(window_ms)),
        IndexSpec(keys=(("createdAt", ASCENDING), ("updatedAt", ASCENDING))),
        IndexSpec(keys=(("key", ASCENDING), ("hits", ASCENDING)), unique=True),
    )
    return CounterSchema(window_ms=window_ms, indexes=indexes)


def collection_name_for(model_name: str) -> str:
    """Derive the collection name for a model name (``RateLimit`` -> ``ratelimits``)."""
    name = model_name.strip().lower()
    if not name:
        raise ValueError("model_name must be a non-empty string")
    return name if name.endswith("s") else f"{name}s"
