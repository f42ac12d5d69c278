"""Tests for create_store."""

from unittest.mock import patch

import pytest

from ratelimit_store import create_store
from ratelimit_store.adapters.counter_store.atomic import AtomicCounterStore
from ratelimit_store.adapters.document_store.in_memory import InMemoryCollection
from ratelimit_store.core.config import RetrySettings, StoreSettings
from ratelimit_store.core.retry import RetryPolicy


class FakeClient:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True


def test_default_store() -> None:
    store = create_store(StoreSettings(backend="memory"))

    assert isinstance(store, AtomicCounterStore)
    assert store.window_ms == 60000
    assert isinstance(store.collection, InMemoryCollection)
    assert store.collection.name == "ratelimits"


def test_overrides_take_precedence() -> None:
    store = create_store(StoreSettings(backend="memory"), window_ms=1000, model_name="Login")

    assert store.window_ms == 1000
    assert store.schema.expire_after_seconds == 1
    assert store.collection.name == "logins"


def test_explicit_collection_name() -> None:
    store = create_store(backend="memory", collection_name="counters")

    assert store.collection.name == "counters"


def test_unknown_override_rejected() -> None:
    with pytest.raises(ValueError, match="windowMs"):
        create_store(backend="memory", windowMs=1000)


def test_invalid_override_value_rejected() -> None:
    with pytest.raises(ValueError):
        create_store(backend="memory", window_ms=0)


def test_unsupported_backend_rejected() -> None:
    with pytest.raises(ValueError, match="redis"):
        create_store(backend="redis")


def test_each_call_returns_independent_store() -> None:
    first = create_store(backend="memory")
    second = create_store(backend="memory")

    assert first is not second
    assert first.collection is not second.collection


@pytest.mark.asyncio
async def test_stores_with_same_model_name_do_not_share_state() -> None:
    first = create_store(backend="memory", model_name="RateLimit")
    second = create_store(backend="memory", model_name="RateLimit", window_ms=5000)

    await first.increment("k")
    await first.increment("k")

    assert (await second.increment("k")).hits == 1
    assert second.window_ms == 5000


def test_given_collection_is_used() -> None:
    collection = InMemoryCollection("custom")

    store = create_store(collection=collection, backend="mongo")

    assert store.collection is collection


def test_retry_policy_from_settings() -> None:
    store = create_store(
        backend="memory",
        retry_settings=RetrySettings(max_attempts=2, base_delay_seconds=0.5, jitter=0.0),
    )

    assert store.retry_policy.max_attempts == 2
    assert store.retry_policy.base_delay == 0.5


def test_explicit_retry_policy_wins() -> None:
    policy = RetryPolicy.unlimited()

    store = create_store(backend="memory", retry_policy=policy)

    assert store.retry_policy is policy


@pytest.mark.asyncio
async def test_mongo_backend_owns_client() -> None:
    cfg = StoreSettings(backend="mongo", mongo_url="mongodb://db:27017", database="limits")

    client = FakeClient()
    collection = InMemoryCollection("ratelimits")

    with patch("ratelimit_store.factory.connect_collection", return_value=(client, collection)) as connect:
        store = create_store(cfg)

    connect.assert_called_once_with("mongodb://db:27017", "limits", "ratelimits")
    assert store.collection is collection

    await store.close()
    assert client.closed is True
