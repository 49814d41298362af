"""
Prometheus Metrics for the Bridge connector.

This module defines all metrics exposed at the /metrics endpoint.
Metrics are categorized into:

1. Event Metrics - webhooks received and how each event was acknowledged
2. Synchronization Metrics - bank data pulls, polling behaviour
3. Technical Metrics - HTTP surface and upstream API health
"""
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram, Info

# =============================================================================
# SERVICE INFO
# =============================================================================

SERVICE_INFO = Info(
    "bridge_connector_service",
    "Service information"
)
SERVICE_INFO.info({
    "version": "0.1.0",
    "service": "bridge-connector",
})

# =============================================================================
# EVENT METRICS
# =============================================================================

# Counter: Webhooks received by authentication outcome
WEBHOOKS_RECEIVED = Counter(
    "bridge_connector_webhooks_received_total",
    "Inbound webhooks by authentication outcome",
    ["event_name", "outcome"]  # outcome: accepted, ignored, unauthorized
)

# Counter: Event acknowledgments sent back to Algoan
EVENT_ACKNOWLEDGMENTS = Counter(
    "bridge_connector_event_acknowledgments_total",
    "Event acknowledgments by terminal status",
    ["status"]  # PROCESSED, ERROR, FAILED
)

# Gauge: Dispatch tasks currently running
EVENTS_IN_FLIGHT = Gauge(
    "bridge_connector_events_in_flight",
    "Number of events currently being processed"
)

# =============================================================================
# SYNCHRONIZATION METRICS
# =============================================================================

SYNC_DURATION = Histogram(
    "bridge_connector_sync_duration_seconds",
    "Time to run a full bank details synchronization",
    ["outcome"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0]
)

POLL_ITERATIONS = Histogram(
    "bridge_connector_poll_iterations",
    "Number of calls made by a convergence poller",
    ["poller"],  # refresh, transactions
    buckets=[1, 2, 3, 5, 10, 20, 50]
)

POLL_TIMEOUTS = Counter(
    "bridge_connector_poll_timeouts_total",
    "Convergence pollers that stopped on their deadline",
    ["poller"]
)

SYNCED_TRANSACTIONS = Histogram(
    "bridge_connector_synced_transactions",
    "Transactions collected per synchronization",
    buckets=[0, 10, 50, 100, 250, 500, 1000, 2500]
)

# =============================================================================
# TECHNICAL METRICS
# =============================================================================

UPSTREAM_LATENCY = Histogram(
    "bridge_connector_upstream_latency_seconds",
    "Upstream API call latency",
    ["service", "operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

UPSTREAM_FAILURES = Counter(
    "bridge_connector_upstream_failures_total",
    "Upstream API call failures",
    ["service", "operation", "error_type"]  # http_error, timeout, connection_error, invalid_response
)

HTTP_REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

HTTP_REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def record_webhook(event_name: str, outcome: str) -> None:
    """Record an inbound webhook and how it was authenticated."""
    WEBHOOKS_RECEIVED.labels(event_name=event_name, outcome=outcome).inc()


def record_acknowledgment(status: str) -> None:
    """Record the terminal status reported for an event."""
    EVENT_ACKNOWLEDGMENTS.labels(status=status).inc()


def record_sync(success: bool, latency_seconds: float, transaction_count: int = 0) -> None:
    """
    Record metrics for one bank details synchronization.

    Args:
        success: Whether the analysis was updated with accounts
        latency_seconds: End-to-end duration of the workflow
        transaction_count: Transactions collected by the transaction poller
    """
    outcome = "success" if success else "error"
    SYNC_DURATION.labels(outcome=outcome).observe(latency_seconds)
    if success:
        SYNCED_TRANSACTIONS.observe(transaction_count)


def record_poll(poller: str, iterations: int, timed_out: bool) -> None:
    """Record how a convergence poller ended."""
    POLL_ITERATIONS.labels(poller=poller).observe(iterations)
    if timed_out:
        POLL_TIMEOUTS.labels(poller=poller).inc()


def record_upstream_call(
    service: str,
    operation: str,
    latency_seconds: float,
    error_type: Optional[str] = None,
) -> None:
    """Record an upstream API call, successful when error_type is None."""
    UPSTREAM_LATENCY.labels(service=service, operation=operation).observe(latency_seconds)

    if error_type is not None:
        UPSTREAM_FAILURES.labels(
            service=service, operation=operation, error_type=error_type
        ).inc()


def record_http_request(method: str, endpoint: str, status: int, latency_seconds: float) -> None:
    """Record a request served by the HTTP surface."""
    HTTP_REQUESTS.labels(method=method, endpoint=endpoint, status=status).inc()
    HTTP_REQUEST_LATENCY.labels(method=method, endpoint=endpoint).observe(latency_seconds)
