"""Prometheus metrics configuration."""

from __future__ import annotations

import structlog
from fastapi import FastAPI
from prometheus_client import Counter, Gauge, Histogram
from prometheus_fastapi_instrumentator import Instrumentator

logger = structlog.get_logger("grailseeker.metrics")

app_info = Gauge(
    "app_info",
    "Application information",
    ["version"],
)

# Scan resolution metrics
scan_resolutions_total = Counter(
    "scan_resolutions_total",
    "Total number of scan resolutions by outcome",
    ["outcome"],  # auto_resolved, needs_confirmation, no_match
)
scan_correction_hits_total = Counter(
    "scan_correction_hits_total",
    "Total number of resolutions answered from correction memory",
)
scan_resolution_duration_seconds = Histogram(
    "scan_resolution_duration_seconds",
    "Duration of scan resolutions in seconds",
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
catalog_requests_failed_total = Counter(
    "catalog_requests_failed_total",
    "Total number of failed catalog lookups (degraded to empty results)",
    ["operation"],  # search_volumes, search_issues
)
correction_writes_failed_total = Counter(
    "correction_writes_failed_total",
    "Total number of correction writes that failed and were swallowed",
    ["reason"],  # conflict, database, unexpected
)

# Database retry operation metrics
db_retry_attempts_total = Counter(
    "db_retry_attempts_total",
    "Total number of database operation retry attempts",
    ["operation_type"],
)
db_lock_errors_total = Counter(
    "db_lock_errors_total",
    "Total number of database lock errors encountered",
)
db_retries_failed_total = Counter(
    "db_retries_failed_total",
    "Total number of database operations that failed after all retries",
    ["operation_type"],
)


def setup_metrics(app: FastAPI, app_version: str) -> None:
    """Setup Prometheus metrics using prometheus-fastapi-instrumentator.

    Args:
        app: FastAPI application instance
        app_version: Application version
    """
    if getattr(app.state, "_metrics_initialized", False):
        logger.debug("Metrics already initialized for this app instance, skipping")
        return

    instrumentator = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=[
            "/metrics",
            "/docs",
            "/openapi.json",
            "/redoc",
        ],
    )
    instrumentator.instrument(app).expose(app, endpoint="/metrics")

    app.state._metrics_initialized = True
    app_info.labels(version=app_version).set(1)

    logger.info("Metrics initialized", version=app_version)
