"""Per-IP daily request counters.

Every backend exposes the same async interface (``get``, ``increment``,
``reset``, ``reset_all``, ``list_top``). Backends are split by the guarantee
they give under concurrent increments:

- :class:`AtomicCounterStore` never loses an increment (memory, SQLite UPSERT).
- :class:`BestEffortCounterStore` does a read-modify-write against an
  eventually consistent key-value store and may undercount under races.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from abc import ABC, abstractmethod

import aiosqlite

from edgeproxy.middleware.error_handler import CounterStoreError

logger = logging.getLogger(__name__)

KV_COUNTER_TTL_SECONDS = 86400


class CounterStore(ABC):
    """Async counter keyed by ``(client_ip, day)``."""

    atomic: bool = False

    async def open(self) -> None:  # noqa: B027 - optional hook
        """Acquire backend resources."""

    async def close(self) -> None:  # noqa: B027 - optional hook
        """Release backend resources."""

    @abstractmethod
    async def get(self, client_ip: str, day: str) -> int: ...

    @abstractmethod
    async def increment(self, client_ip: str, day: str) -> int:
        """Add one and return the new count."""

    @abstractmethod
    async def reset(self, client_ip: str, day: str) -> None: ...

    @abstractmethod
    async def reset_all(self) -> None: ...

    @abstractmethod
    async def list_top(self, day: str, limit: int = 100) -> list[tuple[str, int]]:
        """Highest counts for ``day``, descending."""


class AtomicCounterStore(CounterStore):
    """Marker base: increments are never lost."""

    atomic = True


class BestEffortCounterStore(CounterStore):
    """Marker base: concurrent increments may be lost."""

    atomic = False


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------


class MemoryCounterStore(AtomicCounterStore):
    """Process-local counters. Increments have no await point, so they are atomic."""

    def __init__(self) -> None:
        self._counts: dict[tuple[str, str], int] = {}

    async def get(self, client_ip: str, day: str) -> int:
        return self._counts.get((client_ip, day), 0)

    async def increment(self, client_ip: str, day: str) -> int:
        key = (client_ip, day)
        self._counts[key] = self._counts.get(key, 0) + 1
        return self._counts[key]

    async def reset(self, client_ip: str, day: str) -> None:
        self._counts.pop((client_ip, day), None)

    async def reset_all(self) -> None:
        self._counts.clear()

    async def list_top(self, day: str, limit: int = 100) -> list[tuple[str, int]]:
        rows = [(ip, count) for (ip, d), count in self._counts.items() if d == day]
        rows.sort(key=lambda row: row[1], reverse=True)
        return rows[:limit]


# ---------------------------------------------------------------------------
# Key-value (best effort)
# ---------------------------------------------------------------------------


class MemoryKeyValue:
    """Minimal async key-value namespace with per-key expiry.

    Stands in for a hosted KV namespace; the counter store only relies on
    ``get``/``put``/``delete``/``list_keys``.
    """

    def __init__(self) -> None:
        self._data: dict[str, tuple[str, float | None]] = {}

    async def get(self, key: str) -> str | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expiry = item
        if expiry is not None and time.monotonic() >= expiry:
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        expiry = time.monotonic() + ttl_seconds if ttl_seconds else None
        self._data[key] = (value, expiry)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self, prefix: str = "") -> list[str]:
        now = time.monotonic()
        return [
            key
            for key, (_, expiry) in self._data.items()
            if key.startswith(prefix) and (expiry is None or now < expiry)
        ]


class KeyValueCounterStore(BestEffortCounterStore):
    """Counters stored as ``ip:<client_ip>:<day>`` keys with a 24h expiry."""

    def __init__(self, kv: MemoryKeyValue | None = None) -> None:
        self._kv = kv or MemoryKeyValue()

    @staticmethod
    def _key(client_ip: str, day: str) -> str:
        return f"ip:{client_ip}:{day}"

    async def get(self, client_ip: str, day: str) -> int:
        raw = await self._kv.get(self._key(client_ip, day))
        try:
            return int(raw) if raw is not None else 0
        except ValueError:
            logger.warning("Discarding malformed counter value for %s", client_ip)
            return 0

    async def increment(self, client_ip: str, day: str) -> int:
        count = await self.get(client_ip, day) + 1
        await self._kv.put(self._key(client_ip, day), str(count), KV_COUNTER_TTL_SECONDS)
        return count

    async def reset(self, client_ip: str, day: str) -> None:
        await self._kv.delete(self._key(client_ip, day))

    async def reset_all(self) -> None:
        for key in await self._kv.list_keys("ip:"):
            await self._kv.delete(key)

    async def list_top(self, day: str, limit: int = 100) -> list[tuple[str, int]]:
        suffix = f":{day}"
        rows: list[tuple[str, int]] = []
        for key in await self._kv.list_keys("ip:"):
            if not key.endswith(suffix):
                continue
            client_ip = key[len("ip:"):-len(suffix)]
            rows.append((client_ip, await self.get(client_ip, day)))
        rows.sort(key=lambda row: row[1], reverse=True)
        return rows[:limit]


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS ip_limits (
    ip TEXT NOT NULL,
    day TEXT NOT NULL,
    count INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (ip, day)
)
"""


class SqliteCounterStore(AtomicCounterStore):
    """Counters in an SQLite table, incremented with a single UPSERT statement."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._db: aiosqlite.Connection | None = None

    async def open(self) -> None:
        try:
            self._db = await aiosqlite.connect(self._path)
            await self._db.execute(_SCHEMA)
            await self._db.commit()
        except (sqlite3.Error, OSError) as exc:
            raise CounterStoreError(f"Cannot open counter database: {exc}") from exc
        logger.info("Counter database ready at %s", self._path)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise CounterStoreError("Counter database is not open")
        return self._db

    async def get(self, client_ip: str, day: str) -> int:
        try:
            async with self._conn().execute(
                "SELECT count FROM ip_limits WHERE ip = ? AND day = ?", (client_ip, day)
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as exc:
            raise CounterStoreError(str(exc)) from exc
        return int(row[0]) if row else 0

    async def increment(self, client_ip: str, day: str) -> int:
        await self._write(
            "INSERT INTO ip_limits (ip, day, count) VALUES (?, ?, 1) "
            "ON CONFLICT(ip, day) DO UPDATE SET count = count + 1",
            (client_ip, day),
        )
        return await self.get(client_ip, day)

    async def reset(self, client_ip: str, day: str) -> None:
        await self._write("DELETE FROM ip_limits WHERE ip = ? AND day = ?", (client_ip, day))

    async def reset_all(self) -> None:
        await self._write("DELETE FROM ip_limits", ())

    async def list_top(self, day: str, limit: int = 100) -> list[tuple[str, int]]:
        try:
            async with self._conn().execute(
                "SELECT ip, count FROM ip_limits WHERE day = ? ORDER BY count DESC LIMIT ?",
                (day, limit),
            ) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as exc:
            raise CounterStoreError(str(exc)) from exc
        return [(str(ip), int(count)) for ip, count in rows]

    async def _write(self, sql: str, params: tuple) -> None:
        db = self._conn()
        try:
            await db.execute(sql, params)
            await db.commit()
        except sqlite3.Error as exc:
            raise CounterStoreError(str(exc)) from exc


# ---------------------------------------------------------------------------
# Fallback
# ---------------------------------------------------------------------------


class FallbackCounterStore(CounterStore):
    """Uses ``primary`` and degrades to ``fallback`` when it raises.

    Resets are applied to both stores so a later recovery of the primary
    does not resurrect cleared counts.
    """

    def __init__(self, primary: CounterStore, fallback: CounterStore) -> None:
        self._primary = primary
        self._fallback = fallback

    @property
    def atomic(self) -> bool:  # type: ignore[override]
        return self._primary.atomic and self._fallback.atomic

    async def open(self) -> None:
        try:
            await self._primary.open()
        except CounterStoreError as exc:
            logger.warning("Primary counter store unavailable, using fallback: %s", exc)
        await self._fallback.open()

    async def close(self) -> None:
        await self._primary.close()
        await self._fallback.close()

    async def get(self, client_ip: str, day: str) -> int:
        try:
            return await self._primary.get(client_ip, day)
        except CounterStoreError as exc:
            logger.warning("Counter read degraded to fallback: %s", exc)
            return await self._fallback.get(client_ip, day)

    async def increment(self, client_ip: str, day: str) -> int:
        try:
            return await self._primary.increment(client_ip, day)
        except CounterStoreError as exc:
            logger.warning("Counter write degraded to fallback: %s", exc)
            return await self._fallback.increment(client_ip, day)

    async def reset(self, client_ip: str, day: str) -> None:
        await self._both("reset", client_ip, day)

    async def reset_all(self) -> None:
        await self._both("reset_all")

    async def list_top(self, day: str, limit: int = 100) -> list[tuple[str, int]]:
        try:
            return await self._primary.list_top(day, limit)
        except CounterStoreError as exc:
            logger.warning("Counter listing degraded to fallback: %s", exc)
            return await self._fallback.list_top(day, limit)

    async def _both(self, method: str, *args: str) -> None:
        failures = 0
        for store in (self._primary, self._fallback):
            try:
                await getattr(store, method)(*args)
            except CounterStoreError as exc:
                failures += 1
                logger.warning("Counter %s failed on %s: %s", method, type(store).__name__, exc)
        if failures == 2:
            raise CounterStoreError(f"Counter {method} failed on every store")


def build_counter_store(backend: str, sqlite_path: str) -> CounterStore:
    """Counter store for the configured backend name."""
    if backend == "sqlite":
        return FallbackCounterStore(SqliteCounterStore(sqlite_path), KeyValueCounterStore())
    if backend == "kv":
        return KeyValueCounterStore()
    return MemoryCounterStore()
