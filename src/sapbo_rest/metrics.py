"""Prometheus request metrics for the REST client.

Metrics are registered on a caller-supplied registry rather than the global
one, so several clients (or tests) can each keep their own.
"""

import prometheus_client
from prometheus_client.core import CollectorRegistry

# Label value used when no HTTP response was received.
TRANSPORT_ERROR_STATUS = "error"


class RequestMetrics:
    """Counters and latency histogram for BusinessObjects API requests."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """Create and register the request metrics.

        Args:
            registry: Registry to register on. A new private registry is
                created when omitted.
        """
        self.registry = registry if registry is not None else CollectorRegistry()
        self.requests = prometheus_client.Counter(
            "sapbo_requests",
            "BusinessObjects REST API requests by endpoint and status",
            labelnames=["method", "endpoint", "status"],
            registry=self.registry,
        )
        self.duration = prometheus_client.Histogram(
            "sapbo_request_duration_seconds",
            "BusinessObjects REST API request duration in seconds",
            labelnames=["method", "endpoint"],
            registry=self.registry,
        )

    def observe(
        self,
        method: str,
        endpoint: str,
        status: int | None,
        duration: float,
    ) -> None:
        """Record one finished request.

        Args:
            method: HTTP method.
            endpoint: Request path template, e.g. ``/raylight/v1/documents``.
            status: HTTP status code, or None if the transport failed.
            duration: Elapsed time in seconds.
        """
        status_label = str(status) if status is not None else TRANSPORT_ERROR_STATUS
        self.requests.labels(
            method=method,
            endpoint=endpoint,
            status=status_label,
        ).inc()
        self.duration.labels(method=method, endpoint=endpoint).observe(duration)
