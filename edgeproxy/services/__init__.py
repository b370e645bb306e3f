"""Application services built on the storage layer."""

from edgeproxy.services.quota import QuotaService

__all__ = ["QuotaService"]
