"""
Metrics Collection with Prometheus.

Exposes HTTP, gateway and webhook metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from storefront.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    EVENT_TYPE = "event_type"
    ERROR_TYPE = "error_type"


class CheckoutMetrics:
    """
    Centralized metrics for the checkout service.

    - HTTP requests (rate, duration, in flight)
    - Gateway calls (rate by outcome, duration)
    - Webhooks (rate by outcome and event type)
    - Errors by type
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "checkout_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "checkout_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "checkout_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "checkout_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Gateway Metrics
        # ====================================================================
        self.gateway_requests_total = Counter(
            "checkout_gateway_requests_total",
            "Total payment provider calls",
            [MetricLabels.OPERATION, MetricLabels.OUTCOME],
        )

        self.gateway_request_duration_seconds = Histogram(
            "checkout_gateway_request_duration_seconds",
            "Payment provider call duration in seconds",
            [MetricLabels.OPERATION],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.order_amount_minor = Histogram(
            "checkout_order_amount_minor",
            "Payment session amounts in minor units",
            buckets=(9000, 18000, 45000, 90000, 180000, 450000, 900000),
        )

        # ====================================================================
        # Webhook Metrics
        # ====================================================================
        self.webhooks_total = Counter(
            "checkout_webhooks_total",
            "Total webhook deliveries",
            [MetricLabels.OUTCOME, MetricLabels.EVENT_TYPE],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "checkout_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_gateway_call(self, operation: str, outcome: str, duration: float) -> None:
        """Record a payment provider call; outcome is success, upstream_error or transport_error."""
        self.gateway_requests_total.labels(operation=operation, outcome=outcome).inc()
        self.gateway_request_duration_seconds.labels(operation=operation).observe(duration)

    def record_webhook(self, outcome: str, event_type: str | None = None) -> None:
        """Record webhook handling outcome."""
        self.webhooks_total.labels(outcome=outcome, event_type=event_type or "none").inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = CheckoutMetrics()
