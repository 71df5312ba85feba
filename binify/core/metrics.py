"""Prometheus Metrics for Paste Lifecycle Operations.

Provides metrics for monitoring the lifecycle orchestrator:
- Operation counts by outcome (success or error code)
- Operation latencies
- Compensation attempts and their results
- Swallowed post-read state update failures
- Sweep throughput

Metrics follow Prometheus naming conventions.
"""

import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Info, REGISTRY


# ==================== Operation Counters ====================

PASTE_OPERATIONS_TOTAL = Counter(
    "binify_paste_operations_total",
    "Total number of paste lifecycle operations",
    ["operation", "outcome"],
)

PASTE_COMPENSATIONS_TOTAL = Counter(
    "binify_paste_compensations_total",
    "Compensating deletes attempted after a partial multi-store write",
    ["operation", "step", "status"],
)

PASTE_STATE_UPDATE_FAILURES_TOTAL = Counter(
    "binify_paste_state_update_failures_total",
    "Best-effort state updates that failed and were logged, not surfaced",
    ["operation", "step"],
)

PASTES_SWEPT_TOTAL = Counter(
    "binify_pastes_swept_total",
    "Expired pastes purged by the sweep",
)

PASTES_BURNED_TOTAL = Counter(
    "binify_pastes_burned_total",
    "Pastes destroyed by reaching their view limit",
)


# ==================== Latency Histograms ====================

# Each operation is a handful of network round trips to two stores
LIFECYCLE_LATENCY_BUCKETS = (
    0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0
)

PASTE_OPERATION_LATENCY = Histogram(
    "binify_paste_operation_latency_seconds",
    "Latency of paste lifecycle operations in seconds",
    ["operation"],
    buckets=LIFECYCLE_LATENCY_BUCKETS,
)

PAYLOAD_SIZE_BYTES = Histogram(
    "binify_payload_size_bytes",
    "Size of stored ciphertext in base64 characters",
    buckets=(256, 1024, 4096, 16384, 65536, 262144, 1048576, 1398102),
)


# ==================== Info Metrics ====================

SERVICE_INFO = Info(
    "binify_service",
    "Paste service information",
)


# ==================== Helper Classes ====================

class MetricsRecorder:
    """Helper for recording lifecycle metrics."""

    def __init__(self):
        self._initialized = False

    def initialize(self, version: str, payload_backend: str):
        """Initialize metrics with service info."""
        if self._initialized:
            return

        SERVICE_INFO.info({
            "version": version,
            "payload_backend": payload_backend,
        })
        self._initialized = True

    @contextmanager
    def track_operation(self, operation: str):
        """Context manager to track a lifecycle operation.

        Domain errors are counted under their stable code, so "gone" and
        "not_found" stay distinguishable on dashboards.

        Usage:
            with metrics.track_operation("consume"):
                result = await lifecycle.consume(paste_id)
        """
        start_time = time.perf_counter()
        outcome = "success"

        try:
            yield
        except Exception as e:
            outcome = getattr(e, "code", "error")
            raise
        finally:
            duration = time.perf_counter() - start_time
            PASTE_OPERATIONS_TOTAL.labels(operation=operation, outcome=outcome).inc()
            PASTE_OPERATION_LATENCY.labels(operation=operation).observe(duration)

    def record_compensation(self, operation: str, step: str, succeeded: bool):
        """Record a compensating delete."""
        PASTE_COMPENSATIONS_TOTAL.labels(
            operation=operation,
            step=step,
            status="success" if succeeded else "error",
        ).inc()

    def record_state_update_failure(self, operation: str, step: str):
        """Record a best-effort update that failed."""
        PASTE_STATE_UPDATE_FAILURES_TOTAL.labels(operation=operation, step=step).inc()

    def record_burn(self):
        PASTES_BURNED_TOTAL.inc()

    def record_swept(self, count: int):
        if count:
            PASTES_SWEPT_TOTAL.inc(count)

    def record_payload_size(self, size: int):
        PAYLOAD_SIZE_BYTES.observe(size)


# ==================== FastAPI Integration ====================

def setup_metrics(app):
    """Set up metrics endpoint on FastAPI app.

    Service info is filled in by metrics.initialize() once the stores
    are built.

    Usage:
        from binify.core.metrics import setup_metrics
        setup_metrics(app)
    """
    from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
    from fastapi import Response

    @app.get("/metrics", include_in_schema=False)
    async def prometheus_metrics():
        return Response(
            content=generate_latest(REGISTRY),
            media_type=CONTENT_TYPE_LATEST,
        )


# Singleton instance
metrics = MetricsRecorder()
