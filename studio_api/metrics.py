"""Prometheus metrics definitions for the Studio Platform API.

This module defines all Prometheus metrics used for observability:
- HTTP request metrics (count, duration, in-flight)
- Store query metrics (queries, duration, open cursors)
- User table engine metrics (operations by outcome)
- Catalog gauges (projects, user tables)
"""

import time

from prometheus_client import Counter, Gauge, Histogram, Info

# process_* metrics come from the default registry's ProcessCollector

# =============================================================================
# Service Health Metrics
# =============================================================================

SERVICE_UP = Gauge(
    "studio_api_up",
    "Whether the Studio API service is up (1) or down (0)"
)

SERVICE_START_TIME = Gauge(
    "studio_api_start_time_seconds",
    "Unix timestamp when the service started"
)

SERVICE_START_TIME.set(time.time())
SERVICE_UP.set(1)

SERVICE_INFO = Info(
    "studio_api",
    "Studio API service information"
)

# =============================================================================
# HTTP Request Metrics
# =============================================================================

REQUEST_COUNT = Counter(
    "studio_api_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status_code"]
)

REQUEST_DURATION = Histogram(
    "studio_api_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

REQUEST_IN_FLIGHT = Gauge(
    "studio_api_requests_in_flight",
    "Number of HTTP requests currently being processed",
    ["method"]
)

# =============================================================================
# Error Metrics
# =============================================================================

ERROR_COUNT = Counter(
    "studio_api_errors_total",
    "Total number of errors by type",
    ["type", "endpoint"]
)

# =============================================================================
# Store Metrics
# =============================================================================

STORE_QUERIES_TOTAL = Counter(
    "studio_store_queries_total",
    "Total store queries",
    ["operation"]  # read, write
)

STORE_QUERY_DURATION = Histogram(
    "studio_store_query_duration_seconds",
    "Store query duration in seconds",
    ["operation"],  # read, write
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5]
)

STORE_CONNECTIONS_ACTIVE = Gauge(
    "studio_store_connections_active",
    "Open cursors on the store connection"
)

# =============================================================================
# User Table Engine Metrics
# =============================================================================

USER_TABLE_OPERATIONS = Counter(
    "studio_user_table_operations_total",
    "User table engine operations",
    ["operation", "status"]  # status: success, error
)

USER_TABLE_OPERATION_DURATION = Histogram(
    "studio_user_table_operation_duration_seconds",
    "User table engine operation duration in seconds",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

# =============================================================================
# Catalog Metrics (collected on-demand)
# =============================================================================

PROJECTS_TOTAL = Gauge(
    "studio_projects_total",
    "Total number of projects"
)

USER_TABLES_TOTAL = Gauge(
    "studio_user_tables_total",
    "Total number of user tables with a physical table"
)


def set_service_info(version: str, duckdb_version: str) -> None:
    """Set service info labels."""
    SERVICE_INFO.info({
        "version": version,
        "duckdb_version": duckdb_version
    })
