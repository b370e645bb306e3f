"""FastAPI application entry point with lifespan management.

Startup: configure JSON logging, open the counter store.
Shutdown: close the counter store and the shared upstream HTTP client.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI

from edgeproxy import __version__
from edgeproxy.config.settings import EdgeSettings
from edgeproxy.config.upstreams import load_upstreams
from edgeproxy.logging_config import configure_logging
from edgeproxy.middleware.access import ClientAccessMiddleware
from edgeproxy.middleware.client_context import ClientContextMiddleware
from edgeproxy.middleware.error_handler import register_error_handlers
from edgeproxy.proxy.access import AccessFilter
from edgeproxy.proxy.docker import DockerAdapter
from edgeproxy.proxy.engine import GeneralProxyEngine
from edgeproxy.proxy.mirror import MirrorRelay
from edgeproxy.proxy.registry import RegistryRouter
from edgeproxy.proxy.rewriter import RecursiveRewriter
from edgeproxy.proxy.token import TokenRelay
from edgeproxy.proxy.upstream import UpstreamClient
from edgeproxy.routers.edge import create_edge_router
from edgeproxy.services.quota import QuotaService
from edgeproxy.storage.cache import ResponseCache
from edgeproxy.storage.counters import build_counter_store

logger = logging.getLogger(__name__)


def create_app(
    settings: EdgeSettings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    settings:
        Explicit settings; read from ``EDGE_*`` environment variables when omitted.
    transport:
        Optional httpx transport for every upstream call (tests pass a
        ``httpx.MockTransport``).
    """
    settings = settings or EdgeSettings()
    catalog = load_upstreams(settings.upstreams_path)

    upstream = UpstreamClient(
        timeout_seconds=settings.upstream_timeout_seconds,
        max_redirects=settings.max_redirects,
        transport=transport,
    )
    store = build_counter_store(settings.counter_backend, settings.sqlite_path)
    cache = (
        ResponseCache(settings.cache_ttl_seconds, settings.cache_max_entries)
        if settings.enable_cache
        else None
    )

    access = AccessFilter(settings)
    registry = RegistryRouter(catalog.registries)
    mirrors = MirrorRelay(upstream, catalog.mirrors)
    quota = QuotaService(store, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: startup and shutdown logic."""
        configure_logging(settings.log_level, redact=[settings.password])
        logger.info("Starting edge proxy on port %d", settings.port)
        await store.open()
        logger.info(
            "Edge proxy started (counters=%s, cache=%s)",
            settings.counter_backend,
            "on" if cache is not None else "off",
        )

        yield

        logger.info("Shutting down edge proxy")
        await store.close()
        await upstream.aclose()
        logger.info("Edge proxy shut down")

    app = FastAPI(
        title="Edge Proxy",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    register_error_handlers(app)

    # Starlette applies middleware in reverse order of add_middleware calls:
    # client_context -> client_access -> router
    app.add_middleware(ClientAccessMiddleware, access_filter=access)
    app.add_middleware(ClientContextMiddleware, settings=settings)

    app.include_router(
        create_edge_router(
            access=access,
            registry=registry,
            mirrors=mirrors,
            docker=DockerAdapter(upstream),
            token=TokenRelay(upstream, registry),
            engine=GeneralProxyEngine(
                upstream,
                access,
                RecursiveRewriter(cache),
                max_redirects=settings.max_redirects,
            ),
            quota=quota,
            max_body_bytes=settings.max_body_bytes,
        )
    )
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the module-level app with uvicorn."""
    uvicorn.run(app, host="0.0.0.0", port=EdgeSettings().port, log_config=None)


if __name__ == "__main__":
    run()
