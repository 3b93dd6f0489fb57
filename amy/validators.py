"""
Input validation functions for API parameters.

All validators raise ValidationError on invalid input.
"""

from datetime import date, datetime
from typing import Iterable, Optional, Tuple

from amy.exceptions import ValidationError
from amy.models import AccountingMethod, CouponSource, Granularity


# Longest range a single revenue request may span
MAX_RANGE_DAYS = 366 * 5


def validate_date_string(
    value: str,
    field: str = "date",
    format: str = "%Y-%m-%d"
) -> date:
    """
    Validate and parse a date string.

    Args:
        value: Date string to validate
        field: Field name for error messages
        format: Expected date format (default: YYYY-MM-DD)

    Returns:
        Parsed date object

    Raises:
        ValidationError: If date is invalid or in wrong format
    """
    if not value:
        raise ValidationError(field, "Date is required", value)

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    try:
        return datetime.strptime(value, format).date()
    except ValueError:
        raise ValidationError(
            field,
            f"Invalid date format. Expected {format}",
            value
        )


def validate_date_range(
    start_date: str,
    end_date: str,
    max_days: int = MAX_RANGE_DAYS
) -> Tuple[date, date]:
    """
    Validate a date range.

    Args:
        start_date: Start date string (YYYY-MM-DD)
        end_date: End date string (YYYY-MM-DD)
        max_days: Maximum allowed range in days

    Returns:
        Tuple of (start_date, end_date) as date objects

    Raises:
        ValidationError: If dates are invalid or range is too large
    """
    start = validate_date_string(start_date, "startDate")
    end = validate_date_string(end_date, "endDate")

    if start > end:
        raise ValidationError(
            "date_range",
            "Start date must be before or equal to end date",
            f"{start_date} to {end_date}"
        )

    days_diff = (end - start).days
    if days_diff > max_days:
        raise ValidationError(
            "date_range",
            f"Date range cannot exceed {max_days} days",
            f"{days_diff} days"
        )

    return start, end


def validate_granularity(
    value: Optional[str],
    field: str = "granularity",
) -> Granularity:
    """
    Validate a bucketing granularity. Missing values default to monthly.

    Raises:
        ValidationError: If granularity is not monthly, quarterly or yearly
    """
    if value is None or value == "":
        return Granularity.MONTHLY

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    try:
        return Granularity(value.lower().strip())
    except ValueError:
        raise ValidationError(
            field,
            f"Must be one of: {', '.join(g.value for g in Granularity)}",
            value
        )


def validate_accounting_method(
    value: Optional[str],
    field: str = "accountingMethod",
    default: AccountingMethod = AccountingMethod.ACCRUAL,
) -> AccountingMethod:
    """Validate a QuickBooks accounting method (Accrual or Cash)."""
    if value is None or value == "":
        return default

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    for method in AccountingMethod:
        if method.value.lower() == value.lower().strip():
            return method

    raise ValidationError(
        field,
        f"Must be one of: {', '.join(m.value for m in AccountingMethod)}",
        value
    )


def validate_location(
    value: Optional[str],
    known_locations: Iterable[str],
    field: str = "location",
    allow_none: bool = True,
) -> Optional[str]:
    """
    Validate a location name against the configured locations.

    Empty values and the literal "all" mean every location and return None
    when `allow_none` is set.

    Raises:
        ValidationError: If location is unknown or required but missing
    """
    if value is None or value == "" or value == "all":
        if allow_none:
            return None
        raise ValidationError(field, "Location is required")

    if not isinstance(value, str):
        raise ValidationError(field, "Must be a string", value)

    known = list(known_locations)
    if value not in known:
        raise ValidationError(
            field,
            f"Must be one of: {', '.join(known)}",
            value
        )

    return value


def validate_year(value: Optional[str], field: str = "year") -> Optional[int]:
    """Validate an optional four-digit year filter."""
    if value is None or value == "":
        return None

    if isinstance(value, int):
        year = value
    elif isinstance(value, str) and value.strip().isdigit():
        year = int(value.strip())
    else:
        raise ValidationError(field, "Must be a four-digit year", value)

    if year < 2000 or year > 2100:
        raise ValidationError(field, "Year out of range", value)

    return year


def validate_coupon_source(value: Optional[str], field: str = "source") -> Optional[CouponSource]:
    """Validate a coupon source filter. Empty and "all" mean no filter."""
    if value is None or value == "" or value == "all":
        return None

    try:
        return CouponSource(value.lower().strip())
    except (AttributeError, ValueError):
        raise ValidationError(
            field,
            f"Must be one of: all, {', '.join(s.value for s in CouponSource)}",
            value
        )


def validate_choice(
    value: Optional[str],
    choices: Iterable[str],
    default: str,
    field: str,
) -> str:
    """Validate a value against a fixed list of lowercase choices."""
    if value is None or value == "":
        return default

    choices = list(choices)
    normalized = value.lower().strip() if isinstance(value, str) else value
    if normalized not in choices:
        raise ValidationError(field, f"Must be one of: {', '.join(choices)}", value)
    return normalized
