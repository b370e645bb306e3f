"""Server-rendered landing page, robots.txt and favicon."""

from __future__ import annotations

from collections.abc import Iterable
from html import escape

ROBOTS_TXT = "User-agent: *\nDisallow: /"

LIGHTNING_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24" fill="#f59e0b">'
    '<path d="M13 2 3 14h7l-1 8 10-12h-7l1-8z"/></svg>'
)

_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="robots" content="noindex, nofollow">
<title>Edge Proxy</title>
<link rel="icon" href="/favicon.ico" type="image/svg+xml">
<style>
body {{ font-family: system-ui, sans-serif; max-width: 760px; margin: 2rem auto; padding: 0 1rem; }}
code, pre {{ background: #f3f4f6; border-radius: 4px; padding: 0.1rem 0.3rem; }}
pre {{ padding: 0.75rem; overflow-x: auto; }}
.usage {{ font-size: 1.25rem; }}
</style>
</head>
<body>
<h1>Edge Proxy</h1>
<p class="usage">Your IP <code>{client_ip}</code> used <strong>{usage}</strong> of {limit} requests today.</p>
<h2>Docker</h2>
<pre>docker pull {host}/library/nginx:latest
docker pull {host}/ghcr.io/owner/image:tag</pre>
<p>Registries: {registries}</p>
<h2>General proxy</h2>
<pre>curl -O {prefix}/https://example.com/file.tar.gz
bash &lt;(curl -fsSL {prefix}/r/https://get.docker.com)</pre>
<h2>Linux mirrors</h2>
<p>Replace the mirror host with <code>{prefix}/&lt;distro&gt;</code>.</p>
<ul>
{mirror_items}
</ul>
</body>
</html>
"""


def render_dashboard(
    *,
    edge_origin: str,
    password_segment: str,
    client_ip: str,
    usage: int,
    limit: int,
    mirrors: Iterable[str],
    registries: Iterable[str],
) -> str:
    """HTML landing page with the caller's usage and copyable examples."""
    host = edge_origin.split("://", 1)[-1]
    prefix = f"{edge_origin}/{password_segment}" if password_segment else edge_origin
    mirror_items = "\n".join(
        f"<li><code>{escape(name)}</code>: <code>{escape(prefix)}/{escape(name)}/</code></li>"
        for name in mirrors
    )
    return _PAGE.format(
        client_ip=escape(client_ip),
        usage=usage,
        limit=limit,
        host=escape(host),
        prefix=escape(prefix),
        registries=", ".join(f"<code>{escape(name)}</code>" for name in registries),
        mirror_items=mirror_items,
    )
