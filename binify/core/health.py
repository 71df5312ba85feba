"""Health checks for the paste service.

Health check types:
- Liveness: Is the service running? (for Kubernetes liveness probe)
- Readiness: Can both stores be reached? (for readiness probe)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from binify import __version__
from binify.core.stores.base import MetadataStore, PayloadStore

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Health check status levels."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"  # Responsive but slow
    UNHEALTHY = "unhealthy"  # Store unreachable


@dataclass
class CheckResult:
    """Result of a single health check."""

    name: str
    status: HealthStatus
    latency_ms: float
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class HealthReport:
    """Complete health report."""

    status: HealthStatus
    timestamp: datetime
    version: str
    checks: list[CheckResult]
    total_latency_ms: float

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "version": self.version,
            "total_latency_ms": round(self.total_latency_ms, 2),
            "checks": {
                check.name: {
                    "status": check.status.value,
                    "latency_ms": round(check.latency_ms, 2),
                    "message": check.message,
                    "details": check.details,
                }
                for check in self.checks
            },
        }


class HealthChecker:
    """Pings the metadata and payload stores."""

    # Above this a responsive store is reported as degraded
    SLOW_THRESHOLD_MS = 100

    def __init__(self, metadata: MetadataStore, payload: PayloadStore, payload_backend: str = ""):
        self._metadata = metadata
        self._payload = payload
        self._payload_backend = payload_backend

    async def _check_store(self, name: str, store, details: dict[str, Any]) -> CheckResult:
        start = time.monotonic()
        try:
            await store.ping()
        except Exception as e:
            latency = (time.monotonic() - start) * 1000
            logger.error(f"{name} health check failed: {e}")
            return CheckResult(
                name=name,
                status=HealthStatus.UNHEALTHY,
                latency_ms=latency,
                message=f"{name.capitalize()} store error: {e}",
                details=details,
            )

        latency = (time.monotonic() - start) * 1000
        if latency > self.SLOW_THRESHOLD_MS:
            return CheckResult(
                name=name,
                status=HealthStatus.DEGRADED,
                latency_ms=latency,
                message=f"{name.capitalize()} store latency is high: {latency:.1f}ms",
                details=details,
            )
        return CheckResult(
            name=name,
            status=HealthStatus.HEALTHY,
            latency_ms=latency,
            message=f"{name.capitalize()} store is responsive",
            details=details,
        )

    async def check_metadata(self) -> CheckResult:
        return await self._check_store("metadata", self._metadata, {"backend": "sql"})

    async def check_payload(self) -> CheckResult:
        return await self._check_store(
            "payload", self._payload, {"backend": self._payload_backend}
        )

    async def liveness(self) -> dict:
        """Quick liveness check - just verifies the service is running."""
        return {
            "status": "alive",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def readiness(self) -> HealthReport:
        """Readiness check - pings both stores in parallel."""
        start = time.monotonic()
        checks = list(await asyncio.gather(self.check_metadata(), self.check_payload()))
        total_latency = (time.monotonic() - start) * 1000

        if any(c.status == HealthStatus.UNHEALTHY for c in checks):
            status = HealthStatus.UNHEALTHY
        elif any(c.status == HealthStatus.DEGRADED for c in checks):
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY

        return HealthReport(
            status=status,
            timestamp=datetime.now(timezone.utc),
            version=__version__,
            checks=checks,
            total_latency_ms=total_latency,
        )
