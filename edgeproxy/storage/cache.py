"""In-memory TTL cache for rewritten recursive-mode responses.

Keyed by the exact inbound URL. Entries expire after a fixed TTL and the
least recently used entry is evicted once ``max_entries`` is reached.
Writes are last-write-wins.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass

from edgeproxy.proxy.headers import HeaderMap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A fully rewritten response body plus the headers it was served with."""

    body: bytes
    headers: HeaderMap
    status_code: int = 200


class ResponseCache:
    """TTL + LRU cache of :class:`CacheEntry` values.

    Parameters
    ----------
    ttl_seconds:
        Lifetime of each entry.
    max_entries:
        LRU bound; the oldest entry is evicted on overflow.
    """

    def __init__(self, ttl_seconds: float = 3600, max_entries: int = 1024) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_entries = max_entries
        # key -> (entry, expiry_timestamp)
        self._entries: OrderedDict[str, tuple[CacheEntry, float]] = OrderedDict()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def get(self, key: str) -> CacheEntry | None:
        cached = self._entries.get(key)
        if cached is None:
            return None
        entry, expiry = cached
        if time.monotonic() >= expiry:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry

    def put(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = (entry, time.monotonic() + self._ttl_seconds)
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted cache entry %s", evicted)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
