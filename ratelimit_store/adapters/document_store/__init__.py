"""Document store adapters.

The counter store only needs two things from its backing store: an atomic
find-and-modify upsert and index declarations. MongoDB provides both in
production; the in-memory collection mirrors the same contract for a
single process.
"""
