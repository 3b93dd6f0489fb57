"""QuickBooks connection management and revenue endpoints."""
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse

from amy.exceptions import RateLimitedError
from amy.models import DataStatus
from web.config import ADMIN_REDIRECT_URL
from web.schemas import (
    ConnectionStatusResponse,
    DisconnectResponse,
    RevenueResponse,
    TestConnectionResponse,
)
from ._deps import (
    limiter, get_logger, RATE_LIMIT, KNOWN_LOCATIONS,
    get_quickbooks_client, get_token_store, get_revenue_service,
    bad_request,
    validate_accounting_method, validate_date_range, validate_granularity, validate_location,
    NotConnectedError, QuickBooksError, RefreshFailedError, ValidationError,
)

router = APIRouter(prefix="/quickbooks")
logger = get_logger(__name__)


def _admin_redirect(**params) -> RedirectResponse:
    return RedirectResponse(f"{ADMIN_REDIRECT_URL}?{urlencode(params)}", status_code=302)


def _require_location(location: Optional[str]) -> str:
    try:
        return validate_location(location, KNOWN_LOCATIONS, allow_none=False)
    except ValidationError as e:
        raise bad_request(e)


# ═══════════════════════════════════════════════════════════════════════════════
# OAUTH
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/authorize")
@limiter.limit(RATE_LIMIT)
async def authorize(
    request: Request,
    location: Optional[str] = Query(None),
    client=Depends(get_quickbooks_client),
):
    """Redirect the browser to the Intuit consent page for a location."""
    if not location or location not in KNOWN_LOCATIONS:
        return _admin_redirect(error="invalid_location")
    return RedirectResponse(client.authorization_url(location), status_code=302)


@router.get("/callback")
@limiter.limit(RATE_LIMIT)
async def oauth_callback(
    request: Request,
    code: Optional[str] = Query(None),
    realmId: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    token_store=Depends(get_token_store),
):
    """OAuth redirect target: exchange the code and store the credential."""
    if error:
        logger.error(f"QuickBooks OAuth error: {error}")
        return _admin_redirect(error=error)

    if not code or not realmId or not state:
        return _admin_redirect(error="missing_params")

    location = state
    if location not in KNOWN_LOCATIONS:
        return _admin_redirect(error="invalid_location")

    try:
        await token_store.complete_authorization(location, code, realmId)
    except QuickBooksError as e:
        logger.error(f"QuickBooks OAuth callback failed for {location}: {e}")
        return _admin_redirect(error=e.message)

    return _admin_redirect(success="true", location=location)


@router.post("/disconnect", response_model=DisconnectResponse)
@limiter.limit(RATE_LIMIT)
async def disconnect(
    request: Request,
    location: Optional[str] = Query(None),
    revenue_service=Depends(get_revenue_service),
):
    """Delete the stored credential for a location."""
    location = _require_location(location)
    removed = await revenue_service.disconnect(location)
    return {
        "success": True,
        "location": location,
        "removed": removed,
        "message": f"QuickBooks disconnected for {location}",
    }


# ═══════════════════════════════════════════════════════════════════════════════
# STATUS
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/status", response_model=ConnectionStatusResponse)
@limiter.limit("60/minute")
async def connection_status(
    request: Request,
    revenue_service=Depends(get_revenue_service),
):
    """Connection state for every location."""
    return await revenue_service.get_connection_status()


@router.get("/test-connection", response_model=TestConnectionResponse)
@limiter.limit(RATE_LIMIT)
async def test_connection(
    request: Request,
    location: Optional[str] = Query(None),
    revenue_service=Depends(get_revenue_service),
):
    """Round trip CompanyInfo for a location, refreshing its token if needed."""
    location = _require_location(location)
    try:
        return await revenue_service.test_connection(location)
    except (NotConnectedError, RefreshFailedError) as e:
        raise HTTPException(status_code=404, detail=e.message)
    except RateLimitedError as e:
        raise HTTPException(status_code=429, detail=e.message)
    except QuickBooksError as e:
        status_code = getattr(e, "status_code", None) or 502
        raise HTTPException(
            status_code=status_code,
            detail=f"Connection test failed. Please try reconnecting. ({e})",
        )


# ═══════════════════════════════════════════════════════════════════════════════
# REVENUE
# ═══════════════════════════════════════════════════════════════════════════════

_ERROR_STATUS = {
    "not_connected": 401,
    "rate_limited": 429,
}


@router.get("/revenue", response_model=RevenueResponse)
@limiter.limit(RATE_LIMIT)
async def get_revenue(
    request: Request,
    location: Optional[str] = Query(None, description="Location name, or 'all'"),
    startDate: Optional[str] = Query(None, description="YYYY-MM-DD"),
    endDate: Optional[str] = Query(None, description="YYYY-MM-DD"),
    granularity: Optional[str] = Query("monthly"),
    accountingMethod: Optional[str] = Query(None),
    revenue_service=Depends(get_revenue_service),
):
    """
    QuickBooks revenue, COGS and gross profit per period.

    A single location fails the request on any QuickBooks error. The
    all-locations view always answers, with failed locations listed in
    `errors` and excluded from the sums.
    """
    try:
        location = validate_location(location, KNOWN_LOCATIONS)
        start, end = validate_date_range(startDate, endDate)
        granularity_value = validate_granularity(granularity)
        method = validate_accounting_method(accountingMethod)
    except ValidationError as e:
        raise bad_request(e)

    report = await revenue_service.get_revenue(location, start, end, granularity_value, method)

    if location:
        result = report.results[0]
        if not result.ok:
            status_code = 401 if result.status is DataStatus.NOT_CONNECTED else _ERROR_STATUS.get(result.error_code, 502)
            raise HTTPException(status_code=status_code, detail=result.error)

    return report.to_dict()
