"""Short-lived markers that suppress double charging of retried pulls."""

from __future__ import annotations

import time


class DedupWindow:
    """Remembers ``(client_ip, resource)`` pairs for ``ttl_seconds``.

    Best effort: two concurrent duplicates may both pass ``seen`` before
    either calls ``mark``.
    """

    def __init__(self, ttl_seconds: float = 5.0) -> None:
        self._ttl_seconds = ttl_seconds
        self._markers: dict[tuple[str, str], float] = {}

    def seen(self, client_ip: str, resource: str) -> bool:
        expiry = self._markers.get((client_ip, resource))
        if expiry is None:
            return False
        if time.monotonic() >= expiry:
            del self._markers[(client_ip, resource)]
            return False
        return True

    def mark(self, client_ip: str, resource: str) -> None:
        now = time.monotonic()
        self._purge(now)
        self._markers[(client_ip, resource)] = now + self._ttl_seconds

    def _purge(self, now: float) -> None:
        expired = [key for key, expiry in self._markers.items() if now >= expiry]
        for key in expired:
            del self._markers[key]
