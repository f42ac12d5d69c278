"""Counter store backed by an atomic document upsert.

Every operation is a single ``find_one_and_update`` with ``upsert=True``
against the counter collection, so concurrent callers on the same key never
lose updates. The store keeps no counter state of its own.

Failed upserts are retried according to an injected ``RetryPolicy``. The
common failure is benign: two callers upsert a fresh key at the same time,
one insert wins and the other hits the unique index on ``key``. Retrying
turns the loser's insert into an update of the winner's document.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from pymongo import ReturnDocument
from pymongo.errors import OperationFailure, PyMongoError

from ratelimit_store.adapters.counter_store.base import (
    AbstractCounterStore,
    HitCallback,
    HitResult,
)
from ratelimit_store.adapters.document_store.base import DocumentCollection
from ratelimit_store.core.errors import CounterStoreError, RetryExhaustedError
from ratelimit_store.core.logging import hash_key
from ratelimit_store.core.retry import RetryPolicy
from ratelimit_store.models.counter import (
    DEFAULT_WINDOW_MS,
    CounterRecord,
    CounterSchema,
    define_schema,
)

logger = logging.getLogger(__name__)

# IndexOptionsConflict, IndexKeySpecsConflict, DuplicateKey on existing data
_INDEX_CONFLICT_CODES = {85, 86, 11000}


class _MissingDocument(Exception):
    """The upsert returned nothing, e.g. the record expired mid-operation."""


def _noop(*_: Any) -> None:
    return None


class AtomicCounterStore(AbstractCounterStore):
    """Windowed hit counters stored one document per key.

    Attributes:
        window_ms: Window length in milliseconds.
        schema: Index layout applied to the collection.
        retry_policy: Policy governing retries of failed upserts.
    """

    def __init__(
        self,
        collection: DocumentCollection,
        *,
        window_ms: int = DEFAULT_WINDOW_MS,
        retry_policy: RetryPolicy | None = None,
        auto_index: bool = True,
        client: Any | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            collection: Collection holding one counter document per key.
            window_ms: How long in milliseconds to keep records of requests.
            retry_policy: Retry policy; defaults to ``RetryPolicy()``.
            auto_index: Create the schema's indexes before the first operation.
            client: Client owning the collection, closed by ``close()``.

        Raises:
            ValueError: If window_ms is invalid.
        """
        self.schema: CounterSchema = define_schema(window_ms)
        self.window_ms = window_ms
        self.retry_policy = retry_policy or RetryPolicy()
        self._collection = collection
        self._client = client
        self._auto_index = auto_index
        self._indexes_ready = False
        self._index_lock = asyncio.Lock()

    @property
    def collection(self) -> DocumentCollection:
        return self._collection

    async def __aenter__(self) -> "AtomicCounterStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the client if this store owns one."""

        if self._client is None:
            return
        client, self._client = self._client, None
        await client.close()

    async def ensure_indexes(self) -> None:
        """Create every index declared by the schema.

        Raises:
            CounterStoreError: If the backing store rejects an index.
        """

        try:
            await self._apply_indexes(tolerate_conflicts=False)
        except PyMongoError as exc:
            raise CounterStoreError(
                code="index_creation_failed",
                message="Could not create counter indexes",
                details={"error_type": type(exc).__name__},
            ) from exc

    async def _apply_indexes(self, *, tolerate_conflicts: bool) -> None:
        """Create the schema's indexes once.

        Transient errors propagate so the caller can retry. With
        ``tolerate_conflicts`` an index the server definitively refuses is
        logged and skipped, and counters keep working without it.
        """

        async with self._index_lock:
            if self._indexes_ready:
                return

            for index in self.schema.indexes:
                options: dict[str, Any] = {"name": index.name}
                if index.unique:
                    options["unique"] = True
                if index.expire_after_seconds is not None:
                    options["expireAfterSeconds"] = index.expire_after_seconds
                try:
                    await self._collection.create_index(list(index.keys), **options)
                except OperationFailure as exc:
                    if not tolerate_conflicts or exc.code not in _INDEX_CONFLICT_CODES:
                        raise
                    logger.error(
                        "counter_store.index_conflict",
                        extra={
                            "index": index.name,
                            "error_type": type(exc).__name__,
                            "error_code": exc.code,
                        },
                    )

            self._indexes_ready = True
            logger.info(
                "counter_store.indexes_ready",
                extra={
                    "indexes": [index.name for index in self.schema.indexes],
                    "expire_after_s": self.schema.expire_after_seconds,
                },
            )

    async def increment(self, key: str, callback: HitCallback | None = None) -> HitResult:
        return await self._run(key, 1, False, callback, "increment")

    async def decrement(self, key: str, callback: HitCallback | None = None) -> HitResult:
        # No floor: hits may go negative
        return await self._run(key, -1, False, callback, "decrement")

    async def reset_key(self, key: str, callback: HitCallback | None = None) -> HitResult:
        return await self._run(key, 0, True, callback, "reset")

    async def _run(
        self,
        key: str,
        delta: int,
        reset: bool,
        callback: HitCallback | None,
        operation: str,
    ) -> HitResult:
        done = callback if callable(callback) else _noop

        try:
            key = self._normalize_key(key)
            result = await self._hit(key, delta, reset, operation)
        except Exception as exc:
            done(exc, None, None)
            raise

        done(None, result.hits, result.reset_time)
        return result

    async def _hit(self, key: str, delta: int, reset: bool, operation: str) -> HitResult:
        """Apply one atomic upsert, retrying failures per the retry policy.

        Args:
            key: Normalized counter key.
            delta: Amount to add, or the value to set when ``reset`` is true.
            reset: Set ``hits`` to ``delta`` instead of incrementing.
            operation: Operation name for logs.

        Returns:
            HitResult built from the document as written.

        Raises:
            RetryExhaustedError: When the policy allows no further attempt.
        """

        operator = "$set" if reset else "$inc"
        update = {
            operator: {"hits": delta},
            "$currentDate": {"updatedAt": True},
            "$setOnInsert": {"createdAt": datetime.now(timezone.utc)},
        }
        key_hash = hash_key(key)
        attempt = 0

        while True:
            attempt += 1
            try:
                if self._auto_index and not self._indexes_ready:
                    await self._apply_indexes(tolerate_conflicts=True)
                document = await self._collection.find_one_and_update(
                    {"key": key},
                    update,
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
                if not document:
                    raise _MissingDocument("upsert returned no document")
            except (PyMongoError, _MissingDocument) as exc:
                if not self.retry_policy.should_retry(attempt):
                    logger.error(
                        "counter_store.retry_exhausted",
                        extra={
                            "key_hash": key_hash,
                            "attempts": attempt,
                            "error_type": type(exc).__name__,
                        },
                    )
                    raise RetryExhaustedError(
                        code="retry_exhausted",
                        message=f"Counter upsert failed after {attempt} attempts",
                        details={
                            "attempts": attempt,
                            "max_attempts": self.retry_policy.max_attempts or attempt,
                            "error_type": type(exc).__name__,
                            "key_hash": key_hash,
                        },
                    ) from exc

                delay = self.retry_policy.delay_for(attempt)
                logger.warning(
                    "counter_store.hit_retry",
                    extra={
                        "key_hash": key_hash,
                        "attempt": attempt,
                        "delay_s": round(delay, 4),
                        "error_type": type(exc).__name__,
                    },
                )
                # A zero delay still defers to the next event loop turn
                await asyncio.sleep(delay)
                continue

            record = CounterRecord.model_validate(document)
            result = HitResult(hits=record.hits, reset_time=record.reset_time(self.window_ms))
            logger.debug(
                "counter_store.hit",
                extra={
                    "key_hash": key_hash,
                    "operation": operation,
                    "delta": delta,
                    "hits": result.hits,
                    "attempts": attempt,
                },
            )
            return result

    @staticmethod
    def _normalize_key(key: str) -> str:
        if not isinstance(key, str) or not key.strip():
            raise ValueError("key must be a non-empty string")
        return key.strip()
