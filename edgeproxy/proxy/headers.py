"""Immutable, ordered, case-insensitive header multimap.

Every strip/override step the proxy performs on request and response headers
goes through ``HeaderMap`` so each step returns a new value and can be tested
on its own. Names keep the case they were first given; lookups ignore case.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

# Framing headers owned by each hop; never copied between connections.
HOP_BY_HOP = (
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
)

# Headers that identify the edge or the client behind it.
EDGE_IDENTIFYING = (
    "cf-connecting-ip",
    "cf-ipcountry",
    "cf-ray",
    "cf-visitor",
    "cf-worker",
    "x-forwarded-for",
    "x-forwarded-host",
    "x-forwarded-proto",
    "x-real-ip",
    "forwarded",
)

CORS_ALLOW_ALL = ("Access-Control-Allow-Origin", "*")
REGISTRY_API_VERSION = ("Docker-Distribution-API-Version", "registry/2.0")


class HeaderMap:
    """Ordered multimap of ``(name, value)`` pairs with copy-on-write updates."""

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[tuple[str, str]] = ()) -> None:
        self._items: tuple[tuple[str, str], ...] = tuple(
            (str(name), str(value)) for name, value in items
        )

    @classmethod
    def of(cls, mapping: Mapping[str, str]) -> HeaderMap:
        return cls(mapping.items())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, name: str, default: str | None = None) -> str | None:
        """Return the first value for ``name``."""
        lowered = name.lower()
        for key, value in self._items:
            if key.lower() == lowered:
                return value
        return default

    def get_all(self, name: str) -> list[str]:
        lowered = name.lower()
        return [value for key, value in self._items if key.lower() == lowered]

    def items(self) -> list[tuple[str, str]]:
        return list(self._items)

    def names(self) -> set[str]:
        return {key.lower() for key, _ in self._items}

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self.names()

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HeaderMap):
            return NotImplemented
        return [(k.lower(), v) for k, v in self._items] == [
            (k.lower(), v) for k, v in other._items
        ]

    def __hash__(self) -> int:
        return hash(tuple((k.lower(), v) for k, v in self._items))

    def __repr__(self) -> str:
        return f"HeaderMap({list(self._items)!r})"

    # ------------------------------------------------------------------
    # Copy-on-write updates
    # ------------------------------------------------------------------

    def with_override(self, name: str, value: str) -> HeaderMap:
        """Drop every value of ``name`` and append a single ``name: value``."""
        return HeaderMap([*self.without_keys(name)._items, (name, value)])

    def with_overrides(self, pairs: Iterable[tuple[str, str]]) -> HeaderMap:
        result = self
        for name, value in pairs:
            result = result.with_override(name, value)
        return result

    def with_default(self, name: str, value: str) -> HeaderMap:
        """Set ``name`` only when it is absent (or empty)."""
        if self.get(name):
            return self
        return self.with_override(name, value)

    def without_keys(self, *names: str) -> HeaderMap:
        drop = {name.lower() for name in names}
        return HeaderMap((k, v) for k, v in self._items if k.lower() not in drop)

    def copy_from(self, source: HeaderMap, *names: str) -> HeaderMap:
        """Override each of ``names`` with its value in ``source`` when present."""
        result = self
        for name in names:
            value = source.get(name)
            if value is not None:
                result = result.with_override(name, value)
        return result

    # ------------------------------------------------------------------
    # Wire form
    # ------------------------------------------------------------------

    def encode(self) -> list[tuple[bytes, bytes]]:
        """ASGI raw header list (lower-cased latin-1 names)."""
        return [
            (key.lower().encode("latin-1"), value.encode("latin-1", errors="replace"))
            for key, value in self._items
        ]
