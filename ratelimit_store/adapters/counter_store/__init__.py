"""Counter store adapters.

Rate limiting middleware depends on the abstract interface in ``base`` only,
so the persistence behind the counters can change without touching it.
"""
