"""
FastAPI web application for the AMY accounting service.
"""
import os
from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse, JSONResponse
from starlette.middleware.gzip import GZipMiddleware

from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from web.config import VERSION
from web.routes import api
from web.routes.api._deps import limiter
from web.middleware import RequestLoggingMiddleware, RequestTimeoutMiddleware
from amy.cache import ResponseCache
from amy.coupons import CouponService
from amy.config import config, validate_config, ConfigurationError
from amy.exceptions import QueryTimeoutError
from amy.marketers import ProfitabilityService
from amy.observability import setup_logging, get_logger
from amy.payments import PaymentsClient
from amy.quickbooks import QuickBooksClient
from amy.reports import ReportFetcher
from amy.revenue_service import RevenueService
from amy.store import get_store, close_store
from amy.token_store import TokenStore

# Configure structured logging
# Use JSON format in production (LOG_FORMAT=json), human-readable otherwise
log_format = os.getenv("LOG_FORMAT", "text")
log_level = os.getenv("LOG_LEVEL", "INFO")
setup_logging(level=log_level, json_format=(log_format == "json"))
logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(
    title="AMY Accounting",
    description="QuickBooks revenue reconciliation for the AMY dashboard",
    version=VERSION,
    default_response_class=ORJSONResponse
)

# Add rate limiter to app state
app.state.limiter = limiter

# Custom rate limit exceeded handler
@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)}")
    return JSONResponse(
        status_code=429,
        content={
            "error": "Rate limit exceeded",
            "detail": "Too many requests. Please try again later.",
            "retry_after": exc.detail
        }
    )


@app.exception_handler(QueryTimeoutError)
async def query_timeout_handler(request: Request, exc: QueryTimeoutError):
    logger.error(f"Ledger query timed out: {exc}", extra={"timeout": exc.timeout})
    return JSONResponse(
        status_code=504,
        content={"error": "Database timeout", "detail": str(exc)}
    )

# Add request logging middleware (adds correlation IDs and timing)
app.add_middleware(RequestLoggingMiddleware)

# Add request timeout middleware (prevents long-running requests)
# Must be AFTER logging so correlation_id is set when timeout fires
app.add_middleware(RequestTimeoutMiddleware)

# Add Gzip compression (min 500 bytes to compress)
app.add_middleware(GZipMiddleware, minimum_size=500)

# Include routers
app.include_router(api.router, prefix="/api")


@app.on_event("startup")
async def startup_event():
    logger.info("AMY accounting service starting...")

    # Validate configuration early - fail fast with clear errors
    try:
        validate_config()
        logger.info("Configuration validated")
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}")
        raise SystemExit(1)

    try:
        store = await get_store()
    except Exception as e:
        logger.error(f"DuckDB initialization failed: {e}", exc_info=True)
        raise  # Fail fast - DuckDB is required

    client = QuickBooksClient()
    await client.connect()

    token_store = TokenStore(store, client)
    response_cache = ResponseCache(
        ttl_seconds=config.cache.ttl_seconds,
        max_entries=config.cache.max_entries,
    )
    revenue_service = RevenueService(
        ReportFetcher(token_store, client),
        token_store,
        response_cache,
    )

    app.state.store = store
    app.state.quickbooks_client = client
    app.state.token_store = token_store
    app.state.response_cache = response_cache
    app.state.revenue_service = revenue_service
    app.state.profitability_service = ProfitabilityService(store, revenue_service)

    payments_client = PaymentsClient()
    await payments_client.connect()
    app.state.payments_client = payments_client
    app.state.coupon_service = CouponService(payments_client)
    if not payments_client.configured:
        logger.warning("MedRock Payments API not configured; coupon report will show historical data only")

    connected = await token_store.connected_locations()
    logger.info(
        f"Service ready ({config.quickbooks.environment}): "
        f"{len(connected)}/{len(config.locations.names)} locations connected",
        extra={"connected": connected}
    )


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("AMY accounting service shutting down...")

    client = getattr(app.state, "quickbooks_client", None)
    if client is not None:
        await client.close()

    payments_client = getattr(app.state, "payments_client", None)
    if payments_client is not None:
        await payments_client.close()

    await close_store()
    logger.info("Shutdown complete")


def run():
    """Run the API with uvicorn."""
    import uvicorn
    from web.config import WEB_HOST, WEB_PORT

    uvicorn.run("web.main:app", host=WEB_HOST, port=WEB_PORT)


if __name__ == "__main__":
    run()
