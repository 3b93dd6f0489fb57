"""Health check and metrics endpoints."""
import time

from fastapi import APIRouter, Depends, Request

from amy.config import config
from amy.observability import get_correlation_id, metrics, Timer
from web.config import VERSION
from web.schemas import HealthResponse, MetricsResponse
from ._deps import limiter, get_store, get_response_cache, get_logger, START_TIME

router = APIRouter()
logger = get_logger(__name__)


@router.get("/health", response_model=HealthResponse)
@limiter.limit("60/minute")
async def health_check(
    request: Request,
    store=Depends(get_store),
    response_cache=Depends(get_response_cache),
):
    """Health check endpoint for Docker/load balancer monitoring."""
    uptime_seconds = int(time.time() - START_TIME)

    try:
        with Timer("health_check_db") as timer:
            await store.ping()
        store_stats = {
            "status": "connected",
            "latency_ms": round(timer.elapsed_ms, 2),
            **{k: v for k, v in store.get_connection_info().items() if k != "status"},
        }
    except Exception as e:
        logger.warning(f"Health check store error: {e}")
        store_stats = {"status": f"error: {e}"}

    return {
        "status": "healthy" if store_stats["status"] == "connected" else "degraded",
        "version": VERSION,
        "uptime_seconds": uptime_seconds,
        "correlation_id": get_correlation_id(),
        "environment": config.quickbooks.environment,
        "store": store_stats,
        "cache": response_cache.get_stats() if response_cache is not None else None,
    }


@router.get("/metrics", response_model=MetricsResponse)
@limiter.limit("30/minute")
async def get_metrics(request: Request):
    """Request counts, error counts and timing samples since startup."""
    return metrics.get_stats()
