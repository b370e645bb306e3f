"""Request classification.

``classify`` turns a :class:`ProxyRequest` into exactly one
:class:`RouteDecision`. It performs no I/O, so the whole routing table can be
tested without an app or an upstream.
"""

from __future__ import annotations

from edgeproxy.proxy.access import AccessFilter
from edgeproxy.proxy.mirror import MirrorRelay
from edgeproxy.proxy.registry import RegistryRouter
from edgeproxy.proxy.types import (
    AdminCommandRoute,
    DashboardRoute,
    DeniedRoute,
    GeneralProxyRoute,
    NotFoundRoute,
    PreflightRoute,
    ProxyMode,
    ProxyRequest,
    RewriteContext,
    RouteDecision,
    StaticAssetRoute,
    TokenRoute,
)
from edgeproxy.proxy.urls import normalize_target_url

STATIC_ASSETS = {"/robots.txt": "robots.txt", "/favicon.ico": "favicon.ico"}
ADMIN_COMMANDS = frozenset({"reset", "reset-all", "stats"})
RECURSIVE_MARKER = "r/"


def classify(
    request: ProxyRequest,
    *,
    access: AccessFilter,
    registry: RegistryRouter,
    mirrors: MirrorRelay,
) -> RouteDecision:
    """Pick the single route that serves ``request``.

    Raises
    ------
    InvalidTargetURLError
        When a general-proxy target cannot be repaired into an http(s) URL.
    """
    path = request.path

    if path in STATIC_ASSETS:
        return StaticAssetRoute(name=STATIC_ASSETS[path])
    if request.method == "OPTIONS":
        return PreflightRoute()
    if path == "/token":
        return TokenRoute()
    if path == "/v2" or path.startswith("/v2/"):
        return registry.resolve(path[len("/v2/"):], request.query)

    auth = access.authenticate(path, request.client_ip, request.headers.get("referer"))
    if auth is None:
        return NotFoundRoute()

    sub_path = auth.sub_path
    if sub_path == "":
        return DashboardRoute()

    if sub_path in ADMIN_COMMANDS:
        if not auth.used_password:
            return NotFoundRoute()
        if not access.is_admin(request.client_ip):
            return DeniedRoute(reason="Forbidden: Admin IP Required")
        return AdminCommandRoute(name=sub_path)

    mirror = mirrors.match(sub_path, request.query)
    if mirror is not None:
        return mirror

    mode = ProxyMode.RAW
    if sub_path == RECURSIVE_MARKER.rstrip("/") or sub_path.startswith(RECURSIVE_MARKER):
        mode = ProxyMode.RECURSIVE
        sub_path = sub_path[len(RECURSIVE_MARKER):]

    raw_target = f"{sub_path}?{request.query}" if request.query else sub_path
    password_segment = path.split("/")[1] if auth.used_password else ""
    return GeneralProxyRoute(
        mode=mode,
        target_url=normalize_target_url(raw_target),
        rewrite=RewriteContext(
            edge_origin=request.edge_origin, password_segment=password_segment
        ),
    )
