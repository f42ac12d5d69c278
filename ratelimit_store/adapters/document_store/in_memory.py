"""In-memory document collection.

Implements the subset of MongoDB semantics the counter store relies on:
- ``find_one_and_update`` with ``$inc``, ``$set``, ``$setOnInsert`` and
  ``$currentDate``, optionally upserting
- unique indexes, raising ``DuplicateKeyError`` like the server does
- TTL indexes, swept before every operation

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- The insert branch of an upsert yields to the event loop before it commits,
  so concurrent upserts on a fresh key race the way they do against a real
  server (the losers get ``DuplicateKeyError``).
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, OperationFailure

from ratelimit_store.adapters.document_store.base import Document, IndexKeys

logger = logging.getLogger(__name__)

_SUPPORTED_OPERATORS = {"$inc", "$set", "$setOnInsert", "$currentDate"}


def _to_bson_datetime(timestamp: float) -> datetime:
    # BSON dates carry millisecond precision
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.replace(microsecond=(moment.microsecond // 1000) * 1000)


def _matches(document: Mapping[str, Any], filter: Mapping[str, Any]) -> bool:
    return all(document.get(field) == value for field, value in filter.items())


class InMemoryCollection:
    """Async, process-local stand-in for a MongoDB collection.

    Attributes:
        name: Collection name, for logs.
    """

    def __init__(
        self,
        name: str = "ratelimits",
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize an empty collection.

        Args:
            name: Collection name.
            clock: Time source function returning UNIX time in seconds.
        """
        self.name = name
        self._clock = clock
        self._lock = asyncio.Lock()
        self._documents: dict[ObjectId, Document] = {}
        self._indexes: dict[str, dict[str, Any]] = {}

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryCollection(name={self.name!r}, documents={len(self._documents)}, "
            f"indexes={sorted(self._indexes)})"
        )

    async def create_index(self, keys: IndexKeys, **kwargs: Any) -> str:
        """Declare an index. Re-declaring an existing index is a no-op."""

        keys = [tuple(pair) for pair in keys]
        name = kwargs.get("name") or "_".join(f"{field}_{direction}" for field, direction in keys)
        spec = {
            "keys": keys,
            "unique": bool(kwargs.get("unique", False)),
            "expireAfterSeconds": kwargs.get("expireAfterSeconds"),
        }

        async with self._lock:
            existing = self._indexes.get(name)
            if existing is not None and existing != spec:
                raise OperationFailure(
                    f"An existing index has the same name as the requested index: {name}",
                    code=86,
                )
            if spec["unique"]:
                self._check_unique_index(name, spec)
            self._indexes[name] = spec

        logger.debug(
            "document_store.index_created",
            extra={"collection": self.name, "index": name, "unique": spec["unique"]},
        )
        return name

    async def index_information(self) -> dict[str, dict[str, Any]]:
        async with self._lock:
            return copy.deepcopy(self._indexes)

    async def find_one_and_update(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        *,
        upsert: bool = False,
        return_document: bool = ReturnDocument.BEFORE,
    ) -> Document | None:
        """Atomically update the first matching document.

        Raises:
            DuplicateKeyError: If the write would violate a unique index.
            OperationFailure: If the update uses an unsupported operator.
        """

        unknown = set(update) - _SUPPORTED_OPERATORS
        if unknown:
            raise OperationFailure(f"Unknown modifier: {sorted(unknown)[0]}", code=9)

        async with self._lock:
            self._sweep_expired_locked()
            current = self._find_locked(filter)
            if current is not None:
                updated = self._apply_update(current, update, inserting=False)
                self._check_unique_locked(updated, exclude_id=current["_id"])
                self._documents[current["_id"]] = updated
                result = updated if return_document == ReturnDocument.AFTER else current
                return copy.deepcopy(result)

        if not upsert:
            return None

        # The server evaluates the insert branch separately from the lookup
        await asyncio.sleep(0)

        async with self._lock:
            base = {"_id": ObjectId(), **dict(filter)}
            inserted = self._apply_update(base, update, inserting=True)
            self._check_unique_locked(inserted)
            self._documents[inserted["_id"]] = inserted

        if return_document == ReturnDocument.AFTER:
            return copy.deepcopy(inserted)
        return None

    async def find_one(self, filter: Mapping[str, Any] | None = None) -> Document | None:
        async with self._lock:
            self._sweep_expired_locked()
            found = self._find_locked(filter or {})
            return copy.deepcopy(found) if found is not None else None

    async def count_documents(self, filter: Mapping[str, Any] | None = None) -> int:
        async with self._lock:
            self._sweep_expired_locked()
            return sum(1 for doc in self._documents.values() if _matches(doc, filter or {}))

    async def delete_many(self, filter: Mapping[str, Any] | None = None) -> int:
        """Delete matching documents and return how many were removed."""

        async with self._lock:
            doomed = [
                doc_id for doc_id, doc in self._documents.items() if _matches(doc, filter or {})
            ]
            for doc_id in doomed:
                del self._documents[doc_id]
            return len(doomed)

    async def sweep_expired(self) -> int:
        """Run the TTL sweep now and return how many documents expired."""

        async with self._lock:
            return self._sweep_expired_locked()

    def _find_locked(self, filter: Mapping[str, Any]) -> Document | None:
        for document in self._documents.values():
            if _matches(document, filter):
                return document
        return None

    def _apply_update(
        self,
        document: Document,
        update: Mapping[str, Any],
        *,
        inserting: bool,
    ) -> Document:
        result = copy.deepcopy(document)
        now = _to_bson_datetime(self._clock())

        if inserting:
            for field, value in update.get("$setOnInsert", {}).items():
                result[field] = value
        for field, value in update.get("$set", {}).items():
            result[field] = value
        for field, amount in update.get("$inc", {}).items():
            result[field] = result.get(field, 0) + amount
        for field, spec in update.get("$currentDate", {}).items():
            if spec is True or spec == {"$type": "date"}:
                result[field] = now
            else:
                raise OperationFailure(f"Unsupported $currentDate type for {field}", code=2)

        return result

    def _check_unique_locked(self, document: Document, exclude_id: ObjectId | None = None) -> None:
        for name, spec in self._indexes.items():
            if not spec["unique"]:
                continue
            values = tuple(document.get(field) for field, _ in spec["keys"])
            for other_id, other in self._documents.items():
                if other_id == exclude_id:
                    continue
                if tuple(other.get(field) for field, _ in spec["keys"]) == values:
                    key_value = dict(zip((field for field, _ in spec["keys"]), values))
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {self.name} "
                        f"index: {name} dup key: {key_value}",
                        code=11000,
                    )

    def _check_unique_index(self, name: str, spec: dict[str, Any]) -> None:
        seen: set[tuple[Any, ...]] = set()
        for document in self._documents.values():
            values = tuple(document.get(field) for field, _ in spec["keys"])
            if values in seen:
                raise DuplicateKeyError(
                    f"E11000 duplicate key error collection: {self.name} index: {name}",
                    code=11000,
                )
            seen.add(values)

    def _sweep_expired_locked(self) -> int:
        ttl_indexes = [
            (spec["keys"][0][0], spec["expireAfterSeconds"])
            for spec in self._indexes.values()
            if spec["expireAfterSeconds"] is not None and len(spec["keys"]) == 1
        ]
        if not ttl_indexes:
            return 0

        now = datetime.fromtimestamp(self._clock(), tz=timezone.utc)
        expired = [
            doc_id
            for doc_id, doc in self._documents.items()
            if any(
                isinstance(doc.get(field), datetime)
                and doc[field] + timedelta(seconds=seconds) <= now
                for field, seconds in ttl_indexes
            )
        ]
        for doc_id in expired:
            del self._documents[doc_id]

        if expired:
            logger.debug(
                "document_store.ttl_sweep",
                extra={"collection": self.name, "expired": len(expired)},
            )
        return len(expired)
