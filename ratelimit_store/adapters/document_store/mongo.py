"""MongoDB backend built on pymongo's native asyncio client."""

from __future__ import annotations

import logging

from pymongo import AsyncMongoClient
from pymongo.asynchronous.collection import AsyncCollection

logger = logging.getLogger(__name__)


def connect_collection(
    mongo_url: str,
    database: str,
    collection_name: str,
    **client_kwargs,
) -> tuple[AsyncMongoClient, AsyncCollection]:
    """Open a client and return it with the counter collection.

    The client is created lazily connected; the first operation dials the
    server. Datetimes come back timezone-aware (UTC).

    Args:
        mongo_url: MongoDB connection string.
        database: Database name.
        collection_name: Collection holding the counters.
        **client_kwargs: Extra options for ``AsyncMongoClient``.

    Returns:
        Tuple of (client, collection); the caller owns the client.
    """

    client_kwargs.setdefault("tz_aware", True)
    client: AsyncMongoClient = AsyncMongoClient(mongo_url, **client_kwargs)
    collection = client[database][collection_name]

    # The URL may carry credentials, so only names are logged
    logger.info(
        "document_store.mongo_connected",
        extra={
            "database": database,
            "collection": collection_name,
        },
    )
    return client, collection
