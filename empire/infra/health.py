"""
Health Check Service for Empire.

Pings the store and reports its status with a response time.

Used by:
- the public ``/health`` liveness endpoint (no store round-trip)
- the authenticated ``/api/v1/health/detailed`` readiness endpoint
- container healthchecks
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from empire.store.client import StoreClient

logger = logging.getLogger(__name__)


class ServiceStatus(Enum):
    """Service health status."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class HealthCheckResult:
    """Result of a health check for a single service."""

    service_name: str
    status: ServiceStatus
    message: str
    response_time_ms: float
    timestamp: datetime
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "service": self.service_name,
            "status": self.status.value,
            "message": self.message,
            "response_time_ms": self.response_time_ms,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details or {},
        }


@dataclass
class SystemHealthReport:
    """Overall system health report."""

    status: ServiceStatus
    services: list[HealthCheckResult]
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "services": [s.to_dict() for s in self.services],
        }


class HealthCheckService:
    """
    Health checks for the store.

    Example:
        >>> service = HealthCheckService(store, timeout_seconds=2.0)
        >>> report = await service.check_all()
        >>> print(report.status)
        ServiceStatus.HEALTHY
    """

    def __init__(self, store: StoreClient | None, timeout_seconds: float = 5.0):
        """
        Initialize health check service.

        Args:
            store: Store client to ping (None reports UNKNOWN)
            timeout_seconds: Maximum time to wait for the ping
        """
        self.store = store
        self.timeout = timeout_seconds

    async def check_store(self) -> HealthCheckResult:
        """
        Check store health with a ``SELECT 1`` round-trip.

        Returns:
            HealthCheckResult with connection status
        """
        start_time = time.perf_counter()

        if self.store is None:
            return HealthCheckResult(
                service_name="store",
                status=ServiceStatus.UNKNOWN,
                message="Store not configured",
                response_time_ms=0.0,
                timestamp=datetime.now(UTC),
            )

        details = {"role": self.store.role.value, "query": "SELECT 1"}
        try:
            # ping() is blocking; keep the event loop free
            await asyncio.wait_for(asyncio.to_thread(self.store.ping), timeout=self.timeout)
        except TimeoutError:
            return HealthCheckResult(
                service_name="store",
                status=ServiceStatus.UNHEALTHY,
                message=f"Store ping timeout after {self.timeout}s",
                response_time_ms=(time.perf_counter() - start_time) * 1000,
                timestamp=datetime.now(UTC),
                details=details,
            )
        except Exception as e:
            logger.warning("Store health check failed: %s", type(e).__name__)
            return HealthCheckResult(
                service_name="store",
                status=ServiceStatus.UNHEALTHY,
                message=f"Health check failed: {type(e).__name__}",
                response_time_ms=(time.perf_counter() - start_time) * 1000,
                timestamp=datetime.now(UTC),
                details=details,
            )

        return HealthCheckResult(
            service_name="store",
            status=ServiceStatus.HEALTHY,
            message="Store connection successful",
            response_time_ms=(time.perf_counter() - start_time) * 1000,
            timestamp=datetime.now(UTC),
            details=details,
        )

    async def check_all(self) -> SystemHealthReport:
        """
        Run every check and aggregate.

        Returns:
            SystemHealthReport: UNHEALTHY if any check is unhealthy, HEALTHY if
            all are healthy, UNKNOWN otherwise
        """
        results = [await self.check_store()]

        if any(r.status == ServiceStatus.UNHEALTHY for r in results):
            overall_status = ServiceStatus.UNHEALTHY
        elif all(r.status == ServiceStatus.HEALTHY for r in results):
            overall_status = ServiceStatus.HEALTHY
        else:
            overall_status = ServiceStatus.UNKNOWN

        return SystemHealthReport(
            status=overall_status,
            services=results,
            timestamp=datetime.now(UTC),
        )


__all__ = [
    "HealthCheckResult",
    "HealthCheckService",
    "ServiceStatus",
    "SystemHealthReport",
]
