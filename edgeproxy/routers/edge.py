"""Catch-all edge router.

Every inbound request lands on one handler which builds a
:class:`ProxyRequest`, classifies it and dispatches to the matching proxy
component. Quota checks and charging wrap the proxied routes.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from starlette.background import BackgroundTask, BackgroundTasks
from starlette.responses import Response

from edgeproxy.dashboard import LIGHTNING_SVG, ROBOTS_TXT, render_dashboard
from edgeproxy.middleware.error_handler import (
    AdminForbiddenError,
    NotAuthenticatedError,
    PayloadTooLargeError,
)
from edgeproxy.proxy.headers import CORS_ALLOW_ALL, REGISTRY_API_VERSION, HeaderMap
from edgeproxy.proxy.routing import classify
from edgeproxy.proxy.types import (
    AdminCommandRoute,
    DashboardRoute,
    DeniedRoute,
    DockerV2Route,
    GeneralProxyRoute,
    LinuxMirrorRoute,
    NotFoundRoute,
    PreflightRoute,
    ProxyRequest,
    StaticAssetRoute,
    TokenRoute,
)

if TYPE_CHECKING:
    from edgeproxy.proxy.access import AccessFilter
    from edgeproxy.proxy.docker import DockerAdapter
    from edgeproxy.proxy.engine import GeneralProxyEngine
    from edgeproxy.proxy.mirror import MirrorRelay
    from edgeproxy.proxy.registry import RegistryRouter
    from edgeproxy.proxy.token import TokenRelay
    from edgeproxy.services.quota import QuotaService

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

PREFLIGHT_HEADERS = HeaderMap(
    [
        CORS_ALLOW_ALL,
        ("Access-Control-Allow-Methods", "GET, POST, OPTIONS, HEAD"),
        ("Access-Control-Allow-Headers", "*"),
        ("Access-Control-Max-Age", "86400"),
        REGISTRY_API_VERSION,
    ]
)


async def read_body(request: Request, limit: int) -> bytes:
    """Inbound body, refused with 413 as soon as it grows past ``limit`` bytes."""
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        raise PayloadTooLargeError(f"Payload Too Large: limit is {limit} bytes", limit=limit)

    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            raise PayloadTooLargeError(f"Payload Too Large: limit is {limit} bytes", limit=limit)
        chunks.append(chunk)
    return b"".join(chunks)


async def to_proxy_request(request: Request, max_body_bytes: int) -> ProxyRequest:
    """Snapshot the inbound request; relies on ClientContextMiddleware state."""
    body = await read_body(request, max_body_bytes)
    path = request.scope.get("raw_path", b"").decode("latin-1") or request.url.path
    return ProxyRequest(
        method=request.method,
        path=path.split("?", 1)[0],
        query=request.url.query,
        headers=HeaderMap(request.headers.items()),
        body=body or None,
        client_ip=request.state.client_ip,
        country=request.state.country,
        url=str(request.url),
        edge_origin=request.state.edge_origin,
    )


def add_background(response: Response, func, *args) -> None:  # noqa: ANN001
    """Run ``func(*args)`` after the response, keeping any task already attached."""
    task = BackgroundTask(func, *args)
    if response.background is None:
        response.background = task
        return
    response.background = BackgroundTasks(tasks=[response.background, task])


def create_edge_router(
    *,
    access: AccessFilter,
    registry: RegistryRouter,
    mirrors: MirrorRelay,
    docker: DockerAdapter,
    token: TokenRelay,
    engine: GeneralProxyEngine,
    quota: QuotaService,
    max_body_bytes: int = 50 * 1024 * 1024,
) -> APIRouter:
    """Factory that creates the catch-all router with injected components."""

    edge_router = APIRouter(tags=["edge"])

    async def admin_command(route: AdminCommandRoute, request: ProxyRequest) -> JSONResponse:
        if route.name == "reset":
            await quota.reset(request.client_ip)
            logger.info("Counter reset for %s", request.client_ip)
            return JSONResponse({"status": "success", "message": f"Reset {request.client_ip}"})
        if route.name == "reset-all":
            await quota.reset_all()
            logger.info("All counters reset by %s", request.client_ip)
            return JSONResponse({"status": "success", "message": "All counters reset"})
        return JSONResponse({"status": "success", "data": await quota.stats()})

    async def dashboard(request: ProxyRequest) -> HTMLResponse:
        segment = request.path.strip("/").split("/")[0]
        html = render_dashboard(
            edge_origin=request.edge_origin,
            password_segment=segment,
            client_ip=request.client_ip,
            usage=await quota.usage(request.client_ip),
            limit=quota.limit,
            mirrors=mirrors.distros,
            registries=registry.aliases,
        )
        return HTMLResponse(html)

    @edge_router.api_route("/{full_path:path}", methods=ALL_METHODS, include_in_schema=False)
    async def edge(request: Request) -> Response:
        proxy_request = await to_proxy_request(request, max_body_bytes)
        decision = classify(proxy_request, access=access, registry=registry, mirrors=mirrors)
        request.state.route = type(decision).__name__

        if isinstance(decision, StaticAssetRoute):
            if decision.name == "robots.txt":
                return PlainTextResponse(ROBOTS_TXT)
            return Response(LIGHTNING_SVG, media_type="image/svg+xml")
        if isinstance(decision, PreflightRoute):
            response = Response(status_code=200)
            response.raw_headers.extend(PREFLIGHT_HEADERS.encode())
            return response
        if isinstance(decision, TokenRoute):
            return await token.handle(proxy_request)
        if isinstance(decision, NotFoundRoute):
            raise NotAuthenticatedError()
        if isinstance(decision, DeniedRoute):
            raise AdminForbiddenError(decision.reason)
        if isinstance(decision, AdminCommandRoute):
            return await admin_command(decision, proxy_request)

        await quota.check(proxy_request.client_ip)

        if isinstance(decision, DashboardRoute):
            return await dashboard(proxy_request)

        charge_ip = quota.begin_charge(proxy_request, decision)
        if isinstance(decision, DockerV2Route):
            response = await docker.handle(decision, proxy_request)
        elif isinstance(decision, LinuxMirrorRoute):
            response = await mirrors.handle(decision, proxy_request)
        elif isinstance(decision, GeneralProxyRoute):
            response = await engine.handle(decision, proxy_request)
        else:  # pragma: no cover - RouteDecision is exhaustive
            raise NotAuthenticatedError()

        if charge_ip is not None and 200 <= response.status_code < 400:
            add_background(response, quota.commit, charge_ip)
        return response

    return edge_router
