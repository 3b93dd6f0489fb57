"""Marketer profitability endpoint with optional QuickBooks reconciliation."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ._deps import (
    limiter, get_logger, RATE_LIMIT, KNOWN_LOCATIONS,
    get_profitability_service,
    bad_request,
    validate_accounting_method, validate_date_string, validate_granularity,
    validate_location, validate_year,
    ValidationError,
)

router = APIRouter()
logger = get_logger(__name__)


@router.get("/marketer-profitability")
@limiter.limit(RATE_LIMIT)
async def get_marketer_profitability(
    request: Request,
    location: Optional[str] = Query(None, description="Location name, or 'all'"),
    year: Optional[str] = Query(None),
    startDate: Optional[str] = Query(None, description="YYYY-MM-DD; month precision"),
    endDate: Optional[str] = Query(None, description="YYYY-MM-DD; month precision"),
    marketer: Optional[str] = Query(None),
    granularity: Optional[str] = Query("monthly"),
    includeQuickBooks: bool = Query(False),
    accountingMethod: Optional[str] = Query(None),
    service=Depends(get_profitability_service),
):
    """
    Ledger aggregates by period and marketer.

    With includeQuickBooks=true the response also carries QuickBooks
    revenue per period (`quickbooks`), the per-period reconciliation
    (`quickbooksComparison`) and cache provenance (`qbCacheInfo`).
    """
    try:
        location = validate_location(location, KNOWN_LOCATIONS)
        year_value = validate_year(year)
        start = validate_date_string(startDate, "startDate") if startDate else None
        end = validate_date_string(endDate, "endDate") if endDate else None
        if start and end and start > end:
            raise ValidationError("date_range", "Start date must be before or equal to end date")
        granularity_value = validate_granularity(granularity)
        method = validate_accounting_method(accountingMethod)
    except ValidationError as e:
        raise bad_request(e)

    return await service.get_report(
        location=location,
        year=year_value,
        start_date=start,
        end_date=end,
        marketer=marketer or None,
        granularity=granularity_value,
        include_quickbooks=includeQuickBooks,
        accounting_method=method,
    )
