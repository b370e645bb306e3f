"""Upstream HTTP capability built on a shared ``httpx.AsyncClient``.

Every outbound request goes through ``UpstreamClient.open`` which returns a
*streaming* ``httpx.Response``; callers either relay it chunk by chunk or read
it fully. Streams are closed when the relay generator finishes or when the
client disconnects (generator ``finally``).
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import httpx
from starlette.responses import Response, StreamingResponse

from edgeproxy.middleware.error_handler import InvalidTargetURLError, UpstreamNetworkError
from edgeproxy.proxy.headers import HOP_BY_HOP, HeaderMap
from edgeproxy.proxy.types import RedirectPolicy, UpstreamCall

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})


class UpstreamClient:
    """Thin wrapper over ``httpx.AsyncClient`` with bounded timeouts.

    Parameters
    ----------
    timeout_seconds:
        Connect/read/write/pool timeout for every upstream call.
    max_redirects:
        Ceiling for calls made with ``RedirectPolicy.FOLLOW``.
    transport:
        Optional httpx transport (tests inject ``httpx.MockTransport``).
    """

    def __init__(
        self,
        timeout_seconds: float = 30.0,
        max_redirects: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=False,
            max_redirects=max_redirects,
            transport=transport,
        )

    async def open(self, call: UpstreamCall) -> httpx.Response:
        """Send ``call`` and return the response with its body still unread.

        Raises
        ------
        UpstreamNetworkError
            On DNS, connect, timeout or protocol failures.
        """
        try:
            request = self._client.build_request(
                call.method,
                call.url,
                headers=call.headers.items(),
                content=call.body if call.body else None,
            )
        except httpx.InvalidURL as exc:
            raise InvalidTargetURLError(f"Invalid URL: {call.url}", url=call.url) from exc

        logger.debug("Upstream %s %s", call.method, call.url)
        try:
            return await self._client.send(
                request,
                stream=True,
                follow_redirects=call.redirect_policy is RedirectPolicy.FOLLOW,
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "Upstream call failed: %s %s",
                call.method,
                call.url,
                extra={"target_url": call.url, "error_reason": str(exc) or type(exc).__name__},
            )
            raise UpstreamNetworkError(str(exc) or type(exc).__name__) from exc

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Relay helpers
# ---------------------------------------------------------------------------


def response_headers(response: httpx.Response) -> HeaderMap:
    """Upstream response headers minus hop-by-hop framing."""
    return HeaderMap(response.headers.multi_items()).without_keys(*HOP_BY_HOP)


async def _iter_and_close(
    response: httpx.Response, *, decoded: bool
) -> AsyncIterator[bytes]:
    try:
        if response.is_stream_consumed:
            # Already read into memory; the raw stream cannot be replayed.
            yield response.content
            return
        chunks = response.aiter_bytes() if decoded else response.aiter_raw()
        async for chunk in chunks:
            yield chunk
    finally:
        await response.aclose()


def relay(
    response: httpx.Response,
    headers: HeaderMap,
    *,
    status_code: int | None = None,
    decoded: bool = False,
) -> StreamingResponse:
    """Stream an upstream body to the client.

    ``decoded=False`` relays the bytes exactly as received (Content-Encoding and
    Content-Length stay valid); ``decoded=True`` relays httpx-decoded bytes.
    """
    streaming = StreamingResponse(
        _iter_and_close(response, decoded=decoded),
        status_code=status_code if status_code is not None else response.status_code,
    )
    streaming.raw_headers.extend(headers.encode())
    return streaming


def buffered(status_code: int, headers: HeaderMap, body: bytes) -> Response:
    """Fully-read body with explicit headers; Content-Length is recomputed."""
    response = Response(content=body, status_code=status_code)
    response.raw_headers.extend(headers.without_keys("content-length").encode())
    return response


async def read_and_close(response: httpx.Response) -> bytes:
    try:
        return await response.aread()
    finally:
        await response.aclose()
