"""Recursive-mode link rewriting and the rewritten-response cache.

Every absolute ``http(s)://`` URL found in a text body is prefixed with the
edge's recursive route so that follow-up fetches (install scripts pulling
more scripts, HTML pages linking assets) also go through the edge. The URL
pattern is a deliberately broad heuristic; it also matches things that are
not links in the strict sense.
"""

from __future__ import annotations

import logging
import re

import httpx
from starlette.background import BackgroundTask
from starlette.responses import Response

from edgeproxy.proxy.headers import HeaderMap
from edgeproxy.proxy.types import RewriteContext
from edgeproxy.proxy.upstream import buffered, read_and_close
from edgeproxy.storage.cache import CacheEntry, ResponseCache

logger = logging.getLogger(__name__)

LINK_PATTERN = (
    r"https?://[a-zA-Z0-9][-a-zA-Z0-9@:%._+~#=]{1,256}"
    r"\.[a-zA-Z0-9()]{1,6}\b[-a-zA-Z0-9()@:%_+.~#?&/=]*"
)

_BODY_HEADERS = (
    "content-encoding",
    "content-length",
    "transfer-encoding",
    "content-disposition",
)

_PATTERNS: dict[str, re.Pattern[str]] = {}


def _pattern_for(prefix: str) -> re.Pattern[str]:
    pattern = _PATTERNS.get(prefix)
    if pattern is None:
        # Text already carrying the prefix is consumed whole and left alone.
        pattern = re.compile(
            rf"(?P<own>{re.escape(prefix)}(?:{LINK_PATTERN})?)|(?P<link>{LINK_PATTERN})"
        )
        _PATTERNS[prefix] = pattern
    return pattern


def rewrite_links(text: str, ctx: RewriteContext) -> str:
    """Prefix every absolute URL in ``text`` with ``ctx.recursive_prefix``.

    URLs that already point at the edge are left untouched, which makes the
    operation idempotent.
    """
    prefix = ctx.recursive_prefix

    def _replace(match: re.Match[str]) -> str:
        link = match.group("link")
        if link is None or ctx.edge_origin in link:
            return match.group(0)
        return prefix + link

    return _pattern_for(prefix).sub(_replace, text)


class RecursiveRewriter:
    """Reads upstream text, rewrites it and serves/stores it through the cache.

    Parameters
    ----------
    cache:
        Response cache, or None when caching is disabled.
    """

    def __init__(self, cache: ResponseCache | None = None) -> None:
        self._cache = cache

    def lookup(self, cache_key: str) -> Response | None:
        """Serve a cached rewrite, or None on a miss."""
        if self._cache is None:
            return None
        entry = self._cache.get(cache_key)
        if entry is None:
            return None
        logger.debug("Recursive cache hit", extra={"cache_status": "HIT"})
        headers = entry.headers.with_override("X-Cache-Status", "HIT").with_override(
            "X-Proxy-Mode", "Recursive-Cached"
        )
        return buffered(entry.status_code, headers, entry.body)

    async def render(
        self,
        upstream: httpx.Response,
        headers: HeaderMap,
        ctx: RewriteContext,
        cache_key: str | None,
    ) -> Response:
        """Fully read ``upstream``, rewrite its links and schedule the cache write."""
        await read_and_close(upstream)
        encoding = upstream.encoding or "utf-8"
        body = rewrite_links(upstream.text, ctx).encode(encoding, errors="replace")

        out = headers.without_keys(*_BODY_HEADERS)
        response = buffered(
            upstream.status_code, out.with_override("X-Cache-Status", "MISS"), body
        )

        if self._cache is not None and cache_key is not None and upstream.status_code == 200:
            stored = out.with_override(
                "Cache-Control", f"public, max-age={int(self._cache.ttl_seconds)}"
            )
            response.background = BackgroundTask(
                self._cache.put, cache_key, CacheEntry(body=body, headers=stored)
            )
        return response
