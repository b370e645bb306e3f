"""Counters, dedup markers and the rewritten-response cache."""

from edgeproxy.storage.cache import CacheEntry, ResponseCache
from edgeproxy.storage.counters import (
    AtomicCounterStore,
    BestEffortCounterStore,
    CounterStore,
    FallbackCounterStore,
    KeyValueCounterStore,
    MemoryCounterStore,
    SqliteCounterStore,
    build_counter_store,
)
from edgeproxy.storage.dedup import DedupWindow

__all__ = [
    "AtomicCounterStore",
    "BestEffortCounterStore",
    "CacheEntry",
    "CounterStore",
    "DedupWindow",
    "FallbackCounterStore",
    "KeyValueCounterStore",
    "MemoryCounterStore",
    "ResponseCache",
    "SqliteCounterStore",
    "build_counter_store",
]
