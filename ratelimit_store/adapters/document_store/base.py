"""Collection interface the counter store depends on.

The protocol is a strict subset of pymongo's ``AsyncCollection`` so a real
collection can be passed in unchanged.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

Document = dict[str, Any]
IndexKeys = Sequence[tuple[str, int]]


@runtime_checkable
class DocumentCollection(Protocol):
    """Minimal async collection surface used by the counter store."""

    async def find_one_and_update(
        self,
        filter: Mapping[str, Any],
        update: Mapping[str, Any],
        *,
        upsert: bool = False,
        return_document: bool = False,
    ) -> Document | None:
        """Atomically update one document, inserting it when ``upsert`` is set.

        Returns the document after the update when ``return_document`` is
        ``ReturnDocument.AFTER``.
        """
        ...

    async def create_index(self, keys: IndexKeys, **kwargs: Any) -> str:
        """Declare an index; accepts ``unique``, ``expireAfterSeconds`` and ``name``."""
        ...
