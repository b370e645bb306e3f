"""Per-IP daily quota with double-charge suppression.

Days are calendar days at a fixed UTC offset (UTC+8 by default), so the
quota rolls over at the same wall-clock time for every client.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from edgeproxy.config.settings import EdgeSettings
from edgeproxy.middleware.error_handler import QuotaExceededError
from edgeproxy.proxy.types import (
    DockerV2Route,
    GeneralProxyRoute,
    LinuxMirrorRoute,
    ProxyRequest,
    RouteDecision,
)
from edgeproxy.storage.counters import CounterStore
from edgeproxy.storage.dedup import DedupWindow

logger = logging.getLogger(__name__)

DOCKER_CLIENT_MARKERS = ("docker", "go-http", "containerd")
STATS_TOP_N = 100


class QuotaService:
    """Quota checks, charging and admin counter operations.

    Parameters
    ----------
    store:
        Counter backend.
    settings:
        Limit, exempt IPs, charge mode, dedup window and day offset.
    """

    def __init__(self, store: CounterStore, settings: EdgeSettings) -> None:
        self._store = store
        self._limit = settings.daily_limit
        self._exempt = set(settings.quota_exempt_ips)
        self._charge_mode = settings.charge_mode
        self._granularity = settings.dedup_granularity
        self._tz = timezone(timedelta(hours=settings.quota_utc_offset_hours))
        self._dedup = DedupWindow(settings.dedup_ttl_seconds)

    @property
    def limit(self) -> int:
        return self._limit

    def today(self) -> str:
        return datetime.now(self._tz).strftime("%Y-%m-%d")

    def is_exempt(self, client_ip: str) -> bool:
        return client_ip in self._exempt

    async def usage(self, client_ip: str) -> int:
        return await self._store.get(client_ip, self.today())

    async def check(self, client_ip: str) -> int:
        """Return today's count, raising QuotaExceededError once the limit is reached."""
        if self.is_exempt(client_ip):
            return 0
        count = await self.usage(client_ip)
        if count >= self._limit:
            logger.info(
                "Daily limit reached for %s (%d/%d)",
                client_ip,
                count,
                self._limit,
                extra={"client_ip": client_ip},
            )
            raise QuotaExceededError(
                f"Daily Limit Exceeded: {count}/{self._limit}",
                count=count,
                limit=self._limit,
            )
        return count

    # ------------------------------------------------------------------
    # Charging
    # ------------------------------------------------------------------

    def is_chargeable(self, request: ProxyRequest, decision: RouteDecision) -> bool:
        if self._charge_mode == "all":
            return isinstance(decision, (DockerV2Route, LinuxMirrorRoute, GeneralProxyRoute))
        if request.method != "GET" or not request.path.startswith("/v2/"):
            return False
        if "/manifests/" not in request.path and "/blobs/" not in request.path:
            return False
        agent = (request.headers.get("user-agent") or "").lower()
        return any(marker in agent for marker in DOCKER_CLIENT_MARKERS)

    def begin_charge(self, request: ProxyRequest, decision: RouteDecision) -> str | None:
        """Client IP to charge once the response succeeds, or None.

        Sets the dedup marker so an immediate retry of the same resource is
        not charged twice.
        """
        if self.is_exempt(request.client_ip) or not self.is_chargeable(request, decision):
            return None
        resource = request.path if self._granularity == "path" else request.path_and_query
        if self._dedup.seen(request.client_ip, resource):
            logger.debug("Duplicate request within dedup window: %s", resource)
            return None
        self._dedup.mark(request.client_ip, resource)
        return request.client_ip

    async def commit(self, client_ip: str) -> None:
        count = await self._store.increment(client_ip, self.today())
        logger.debug("Charged %s (%d today)", client_ip, count)

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def reset(self, client_ip: str) -> None:
        await self._store.reset(client_ip, self.today())

    async def reset_all(self) -> None:
        await self._store.reset_all()

    async def stats(self) -> dict:
        rows = await self._store.list_top(self.today(), STATS_TOP_N)
        return {
            "totalRequests": sum(count for _, count in rows),
            "uniqueIps": len(rows),
            "details": [{"ip": ip, "count": count} for ip, count in rows],
        }
