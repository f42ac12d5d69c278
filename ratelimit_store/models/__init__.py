from ratelimit_store.models.counter import (
    CounterRecord,
    CounterSchema,
    IndexSpec,
    collection_name_for,
    define_schema,
)

__all__ = [
    "CounterRecord",
    "CounterSchema",
    "IndexSpec",
    "collection_name_for",
    "define_schema",
]
