"""Store factory.

Builds a ready-to-use counter store from settings. Every call returns its
own handle; nothing is registered process-wide, so two stores sharing a
model name never interfere with each other.
"""

from __future__ import annotations

import logging
from typing import Any

from ratelimit_store.adapters.counter_store.atomic import AtomicCounterStore
from ratelimit_store.adapters.document_store.base import DocumentCollection
from ratelimit_store.adapters.document_store.in_memory import InMemoryCollection
from ratelimit_store.adapters.document_store.mongo import connect_collection
from ratelimit_store.core.config import RetrySettings, StoreSettings, settings
from ratelimit_store.core.retry import RetryPolicy
from ratelimit_store.models.counter import collection_name_for

logger = logging.getLogger(__name__)

BACKENDS = ("mongo", "memory")


def create_store(
    store_settings: StoreSettings | None = None,
    *,
    collection: DocumentCollection | None = None,
    retry_policy: RetryPolicy | None = None,
    retry_settings: RetrySettings | None = None,
    **overrides: Any,
) -> AtomicCounterStore:
    """Create a counter store.

    Options are resolved in this order: ``overrides`` (e.g. ``window_ms=1000``
    or ``model_name="Login"``), then ``store_settings``, then the global
    settings loaded from the environment.

    Args:
        store_settings: Store configuration; defaults to ``settings.store``.
        collection: Use this collection instead of building one from settings.
        retry_policy: Retry policy; defaults to one built from retry settings.
        retry_settings: Retry configuration; defaults to ``settings.retry``.
        **overrides: Individual ``StoreSettings`` fields to override.

    Returns:
        AtomicCounterStore bound to its own collection.

    Raises:
        ValueError: If an override is unknown or the backend is unsupported.
    """

    cfg = store_settings or settings.store
    if overrides:
        unknown = set(overrides) - set(StoreSettings.model_fields)
        if unknown:
            raise ValueError(f"Unknown store option(s): {', '.join(sorted(unknown))}")
        cfg = StoreSettings.model_validate({**cfg.model_dump(), **overrides})

    policy = retry_policy or RetryPolicy.from_settings(retry_settings or settings.retry)
    name = cfg.collection_name or collection_name_for(cfg.model_name)
    client = None

    if collection is None:
        backend = cfg.backend.lower()
        if backend == "memory":
            collection = InMemoryCollection(name)
        elif backend == "mongo":
            client, collection = connect_collection(cfg.mongo_url, cfg.database, name)
        else:
            raise ValueError(f"Unsupported backend {cfg.backend!r}; expected one of {BACKENDS}")

    logger.info(
        "counter_store.created",
        extra={
            "model_name": cfg.model_name,
            "collection": name,
            "window_ms": cfg.window_ms,
            "max_attempts": policy.max_attempts,
        },
    )

    return AtomicCounterStore(
        collection,
        window_ms=cfg.window_ms,
        retry_policy=policy,
        auto_index=cfg.auto_index,
        client=client,
    )
