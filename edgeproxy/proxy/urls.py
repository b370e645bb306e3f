"""Target URL repair for the general proxy.

Browsers and intermediate proxies often collapse ``//`` inside a path, so
``/secret/https://host/x`` arrives as ``/secret/https:/host/x``. Targets
without a scheme default to HTTPS.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from edgeproxy.middleware.error_handler import InvalidTargetURLError

_SCHEME_PREFIX = re.compile(r"^(https?):/*", re.IGNORECASE)
_HAS_SCHEME = re.compile(r"^https?:", re.IGNORECASE)

_ALLOWED_SCHEMES = {"http", "https"}


def normalize_target_url(raw: str) -> str:
    """Return a well-formed absolute http(s) URL for ``raw``.

    Raises
    ------
    InvalidTargetURLError
        If the repaired string has no hostname or a non-http(s) scheme.
    """
    if _HAS_SCHEME.match(raw):
        url = _SCHEME_PREFIX.sub(lambda m: f"{m.group(1)}://", raw, count=1)
    else:
        url = "https://" + raw

    try:
        parsed = urlsplit(url)
        hostname = parsed.hostname
        parsed.port  # noqa: B018 - raises ValueError on a malformed port
    except ValueError as exc:
        raise InvalidTargetURLError(f"Invalid URL: {url}", url=url) from exc

    if parsed.scheme.lower() not in _ALLOWED_SCHEMES or not hostname:
        raise InvalidTargetURLError(f"Invalid URL: {url}", url=url)
    return url


def origin_of(url: str) -> str:
    """``scheme://netloc`` of an absolute URL."""
    parsed = urlsplit(url)
    return f"{parsed.scheme}://{parsed.netloc}"
