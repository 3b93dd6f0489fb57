"""Shared dependencies for API route modules."""
import logging
import time

from fastapi import HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from amy.config import config
from amy.validators import (
    validate_accounting_method,
    validate_date_range,
    validate_date_string,
    validate_granularity,
    validate_location,
    validate_year,
)
from amy.exceptions import (
    NotConnectedError,
    QuickBooksError,
    RateLimitedError,
    RefreshFailedError,
    ValidationError,
)
from web.config import RATE_LIMIT

# Shared limiter instance
limiter = Limiter(key_func=get_remote_address)

# Shared logger factory
def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

# Track startup time for uptime calculation
START_TIME = time.time()

KNOWN_LOCATIONS = config.locations.names


# ─── Services (built once at startup and kept on app.state) ─────────────────

def get_store(request: Request):
    return request.app.state.store


def get_response_cache(request: Request):
    return request.app.state.response_cache


def get_quickbooks_client(request: Request):
    return request.app.state.quickbooks_client


def get_token_store(request: Request):
    return request.app.state.token_store


def get_revenue_service(request: Request):
    return request.app.state.revenue_service


def get_profitability_service(request: Request):
    return request.app.state.profitability_service


def get_coupon_service(request: Request):
    return request.app.state.coupon_service


# ─── Error translation ──────────────────────────────────────────────────────

def bad_request(error: ValidationError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(error))


def quickbooks_http_error(error: QuickBooksError) -> HTTPException:
    """Map a single-location QuickBooks failure to an HTTP error."""
    if isinstance(error, (NotConnectedError, RefreshFailedError)):
        return HTTPException(status_code=401, detail=error.message)
    if isinstance(error, RateLimitedError):
        return HTTPException(status_code=429, detail=error.message)
    return HTTPException(status_code=502, detail=str(error))


__all__ = [
    "limiter", "get_logger", "START_TIME", "KNOWN_LOCATIONS", "RATE_LIMIT",
    "get_store", "get_response_cache", "get_quickbooks_client", "get_token_store",
    "get_revenue_service", "get_profitability_service", "get_coupon_service",
    "bad_request", "quickbooks_http_error",
    "validate_accounting_method", "validate_date_range", "validate_date_string",
    "validate_granularity", "validate_location", "validate_year",
    "NotConnectedError", "QuickBooksError", "RateLimitedError", "RefreshFailedError",
    "ValidationError",
]
