"""Coupon redemption report endpoint."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from amy.coupons import COUPON_GRANULARITIES
from amy.exceptions import CouponDataError
from amy.validators import validate_choice, validate_coupon_source
from web.schemas import CouponReportResponse
from ._deps import (
    limiter, get_logger, RATE_LIMIT,
    get_coupon_service,
    bad_request,
    validate_date_string,
    ValidationError,
)

router = APIRouter()
logger = get_logger(__name__)


@router.get("/coupons", response_model=CouponReportResponse)
@limiter.limit(RATE_LIMIT)
async def get_coupons(
    request: Request,
    startDate: Optional[str] = Query(None, description="YYYY-MM-DD"),
    endDate: Optional[str] = Query(None, description="YYYY-MM-DD"),
    source: Optional[str] = Query(None, description="all, historical or live"),
    couponCode: Optional[str] = Query(None),
    granularity: Optional[str] = Query("monthly"),
    export: bool = Query(False, description="Return every matching redemption"),
    service=Depends(get_coupon_service),
):
    """
    Historical and live coupon redemptions merged into one report.

    A Payments API failure does not fail the request: the report is built
    from what could be loaded and `liveError` says what went wrong.
    """
    try:
        start = validate_date_string(startDate, "startDate") if startDate else None
        end = validate_date_string(endDate, "endDate") if endDate else None
        if start and end and start > end:
            raise ValidationError("date_range", "Start date must be before or equal to end date")
        source_value = validate_coupon_source(source)
        granularity_value = validate_choice(granularity, COUPON_GRANULARITIES, "monthly", "granularity")
    except ValidationError as e:
        raise bad_request(e)

    try:
        return await service.get_report(
            start_date=start.isoformat() if start else None,
            end_date=end.isoformat() if end else None,
            source=source_value,
            coupon_code=couponCode.strip() if couponCode else None,
            granularity=granularity_value,
            export=export,
        )
    except CouponDataError as e:
        logger.error(f"Error loading coupon data: {e}")
        raise HTTPException(status_code=500, detail="Failed to load coupon data")
