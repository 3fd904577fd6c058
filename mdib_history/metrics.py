"""
Prometheus metrics for MDIB history reconstruction.

Environment Variables:
    MDIB_HISTORY_METRICS_ENABLED: Enable metrics server (true/false) - default: false
    MDIB_HISTORY_METRICS_PORT: HTTP port for /metrics endpoint - default: 8080

Usage:
    from mdib_history.metrics import start_metrics_server, track_report_applied

    start_metrics_server(enabled=True, port=8080)
    track_report_applied("EpisodicMetricReport")

Tracking functions are no-ops until init_metrics() ran.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Generator, Optional

from prometheus_client import Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

REPORTS_APPLIED: Optional[Counter] = None
DUPLICATES_DROPPED: Optional[Counter] = None
INVALIDATIONS: Optional[Counter] = None
APPLY_DURATION: Optional[Histogram] = None

_metrics_initialized = False
_metrics_lock = threading.Lock()


def init_metrics() -> None:
    """
    Initialize Prometheus metrics (call once at startup).

    Thread-safe via module-level lock.
    """
    global REPORTS_APPLIED, DUPLICATES_DROPPED, INVALIDATIONS, APPLY_DURATION
    global _metrics_initialized

    with _metrics_lock:
        if _metrics_initialized:
            return

        REPORTS_APPLIED = Counter(
            "mdib_history_reports_applied_total",
            "Total number of reports applied to a state cursor",
            labelnames=["report_type"],
        )

        DUPLICATES_DROPPED = Counter(
            "mdib_history_duplicates_dropped_total",
            "Total number of retransmitted reports dropped during replay",
            labelnames=["report_type"],
        )

        INVALIDATIONS = Counter(
            "mdib_history_invalidations_total",
            "Total number of test run invalidations raised during replay",
            labelnames=["reason"],
        )

        # Engine work per report only; time spent by the consumer between steps is excluded
        APPLY_DURATION = Histogram(
            "mdib_history_report_apply_duration_seconds",
            "Duration of applying a single report to the MDIB in seconds",
            labelnames=["report_type"],
            buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
        )

        _metrics_initialized = True
        logger.info("Prometheus metrics initialized")


def start_metrics_server(enabled: bool, port: int) -> None:
    """
    Start Prometheus metrics HTTP server in background thread.

    Args:
        enabled: Whether to start metrics server
        port: HTTP port for /metrics endpoint
    """
    if not enabled:
        logger.info("Metrics server disabled")
        return

    init_metrics()

    try:
        start_http_server(port, addr="0.0.0.0")
        logger.info("Metrics server started on http://0.0.0.0:%d/metrics", port)
    except OSError as e:
        logger.error("Failed to start metrics server: %s", e)


@contextmanager
def track_apply_duration(report_type: str) -> Generator[None, None, None]:
    if APPLY_DURATION is None:
        yield
        return

    with APPLY_DURATION.labels(report_type=report_type).time():
        yield


def track_report_applied(report_type: str) -> None:
    if REPORTS_APPLIED is not None:
        REPORTS_APPLIED.labels(report_type=report_type).inc()


def track_duplicate_dropped(report_type: str) -> None:
    if DUPLICATES_DROPPED is not None:
        DUPLICATES_DROPPED.labels(report_type=report_type).inc()


def track_invalidation(reason: str) -> None:
    if INVALIDATIONS is not None:
        INVALIDATIONS.labels(reason=reason).inc()
