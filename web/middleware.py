"""
FastAPI middleware for request tracing and timeouts.

RequestLoggingMiddleware gives every request a correlation ID (taken from
X-Request-ID when the caller sends one), logs it with the location it
targets and records per-endpoint counts and timings. RequestTimeoutMiddleware
bounds how long an upstream fan-out may hold a request open.
"""
import asyncio
import time
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from amy.config import config
from amy.observability import (
    generate_correlation_id,
    get_correlation_id,
    get_logger,
    metrics,
    set_correlation_id,
)

logger = get_logger(__name__)

# Endpoints that make many upstream calls: one P&L per period per location,
# or one Payments API call per page of coupon redemptions
FANOUT_ENDPOINTS = {
    "/api/coupons",
    "/api/quickbooks/revenue",
    "/api/marketer-profitability",
    "/api/company-summary",
}

QUIET_PATHS = ("/api/health", "/api/metrics")

# The OAuth callback carries a one-time authorization code
REDACTED_PATHS = ("/api/quickbooks/callback",)


def _target_location(request: Request) -> Optional[str]:
    if request.url.path in REDACTED_PATHS:
        return request.query_params.get("state")
    return request.query_params.get("location")


def request_timeout_for(path: str) -> float:
    """Timeout budget in seconds for a request path."""
    if path in FANOUT_ENDPOINTS:
        return config.web.fanout_request_timeout
    return config.web.request_timeout


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Correlation IDs, request logging and endpoint metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Request-ID") or generate_correlation_id()
        set_correlation_id(correlation_id)

        path = request.url.path
        endpoint = f"{request.method} {path}"
        context = {"method": request.method, "path": path}
        location = _target_location(request)
        if location:
            context["location"] = location

        quiet = path in QUIET_PATHS
        if not quiet:
            logger.info(f"Request started: {endpoint}", extra=context)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - started) * 1000
            logger.error(
                f"Request failed: {endpoint}",
                extra={**context, "duration_ms": round(duration_ms, 2), "error": str(e)},
            )
            metrics.record_error(type(e).__name__)
            raise

        duration_ms = (time.perf_counter() - started) * 1000
        response.headers["X-Request-ID"] = correlation_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        if not quiet:
            log = logger.info if response.status_code < 400 else logger.warning
            log(
                f"Request completed: {endpoint} -> {response.status_code}",
                extra={**context, "status_code": response.status_code, "duration_ms": round(duration_ms, 2)},
            )

        metrics.record_request(endpoint)
        metrics.record_timing(endpoint, duration_ms)
        if response.status_code >= 400:
            metrics.record_error(f"HTTP_{response.status_code}")

        return response


class RequestTimeoutMiddleware(BaseHTTPMiddleware):
    """Answers 504 when a request outlives its timeout budget."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        timeout = request_timeout_for(path)
        try:
            return await asyncio.wait_for(call_next(request), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Request timeout after {timeout:.0f}s: {request.method} {path}",
                extra={"method": request.method, "path": path, "timeout": timeout},
            )
            metrics.record_error("REQUEST_TIMEOUT")
            return JSONResponse(
                status_code=504,
                content={
                    "error": "Request Timeout",
                    "detail": f"Request exceeded {timeout:.0f}s timeout",
                    "path": path,
                    "correlation_id": get_correlation_id(),
                },
            )
