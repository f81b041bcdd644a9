"""Prometheus metrics endpoint router.

Exposes /metrics endpoint for Prometheus scraping.
Catalog gauges are refreshed on every scrape.
"""

import duckdb
import structlog
from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from studio_api.config import settings
from studio_api.errors import StoreError
from studio_api.metrics import PROJECTS_TOTAL, USER_TABLES_TOTAL, set_service_info

logger = structlog.get_logger()

router = APIRouter(tags=["metrics"])


def collect_catalog_metrics(request: Request) -> None:
    """Refresh catalog gauges from the store, if it is open."""
    db = getattr(request.app.state, "db", None)
    if db is None or not db.is_open:
        return
    try:
        PROJECTS_TOTAL.set(db.count_projects())
        USER_TABLES_TOTAL.set(db.count_user_tables())
    except StoreError as e:
        logger.error("metrics_collection_failed", error=str(e))


@router.get(
    "/metrics",
    response_class=PlainTextResponse,
    summary="Prometheus metrics endpoint",
    description="Returns metrics in Prometheus text format for scraping.",
)
def get_metrics(request: Request):
    """
    Expose Prometheus metrics.

    This endpoint is intentionally not authenticated to allow
    Prometheus scraping without credentials.
    """
    set_service_info(version=settings.api_version, duckdb_version=duckdb.__version__)
    collect_catalog_metrics(request)

    return PlainTextResponse(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
