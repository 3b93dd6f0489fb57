"""Company-wide Profit & Loss summary endpoint."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from amy.models import AccountingMethod
from web.schemas import CompanySummaryResponse
from ._deps import (
    limiter, get_logger, RATE_LIMIT,
    get_revenue_service,
    bad_request, quickbooks_http_error,
    validate_accounting_method, validate_date_range,
    ValidationError,
)

router = APIRouter()
logger = get_logger(__name__)


@router.get("/company-summary", response_model=CompanySummaryResponse)
@limiter.limit(RATE_LIMIT)
async def get_company_summary(
    request: Request,
    startDate: Optional[str] = Query(None, description="YYYY-MM-DD"),
    endDate: Optional[str] = Query(None, description="YYYY-MM-DD"),
    accountingMethod: Optional[str] = Query(None, description="Cash (default) or Accrual"),
    revenue_service=Depends(get_revenue_service),
):
    """
    Revenue split, COGS, payroll, operating expenses and net income per
    connected location, plus a TOTAL row.

    Locations that fail are reported in `errors`. When every connected
    location fails the request fails with the first location's error.
    """
    try:
        start, end = validate_date_range(startDate, endDate)
        method = validate_accounting_method(accountingMethod, default=AccountingMethod.CASH)
    except ValidationError as e:
        raise bad_request(e)

    summary = await revenue_service.get_company_summary(start, end, method)

    if summary.failures and not summary.locations:
        raise quickbooks_http_error(summary.failures[0])

    logger.info(
        f"Company summary: {len(summary.locations)} locations, revenue {summary.totals.revenue:.2f}",
        extra={"failed_locations": list(summary.errors)}
    )
    return summary.to_dict()
