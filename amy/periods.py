"""
Calendar bucketing of date ranges into monthly, quarterly or yearly windows.

Labels:
    monthly    "YYYY-MM"
    quarterly  "YYYY-Q{1-4}"
    yearly     "YYYY"
"""
import calendar
import re
from datetime import date, timedelta
from typing import Iterator, List, Tuple, Union

from amy.models import Granularity, PeriodWindow

GranularityLike = Union[Granularity, str]

_MONTH_LABEL = re.compile(r"^(\d{4})-(\d{2})$")
_QUARTER_LABEL = re.compile(r"^(\d{4})-Q([1-4])$")
_YEAR_LABEL = re.compile(r"^(\d{4})$")


def quarter_of(month: int) -> int:
    """Quarter number (1-4) for a month number (1-12)."""
    return (month - 1) // 3 + 1


def period_label(year: int, month: int, granularity: GranularityLike) -> str:
    """
    Label of the period containing (year, month).

    >>> period_label(2024, 5, "quarterly")
    '2024-Q2'
    """
    granularity = Granularity(granularity)
    if granularity is Granularity.YEARLY:
        return f"{year}"
    if granularity is Granularity.QUARTERLY:
        return f"{year}-Q{quarter_of(month)}"
    return f"{year}-{month:02d}"


def _unit_end(day: date, granularity: Granularity) -> date:
    """Last day of the month/quarter/year containing `day`."""
    if granularity is Granularity.YEARLY:
        return date(day.year, 12, 31)
    if granularity is Granularity.QUARTERLY:
        last_month = quarter_of(day.month) * 3
    else:
        last_month = day.month
    return date(day.year, last_month, calendar.monthrange(day.year, last_month)[1])


def iter_periods(start_date: date, end_date: date, granularity: GranularityLike) -> Iterator[PeriodWindow]:
    """
    Yield windows covering [start_date, end_date] exactly.

    The first window starts at start_date; each later window starts on the
    first day of its unit. Every window ends at its unit's last day, except
    the final one which is clamped to end_date. Yields nothing when
    start_date is after end_date.
    """
    granularity = Granularity(granularity)
    current = start_date

    while current <= end_date:
        window_end = min(_unit_end(current, granularity), end_date)
        yield PeriodWindow(
            start_date=current,
            end_date=window_end,
            label=period_label(current.year, current.month, granularity),
        )
        if window_end >= end_date:
            return
        current = window_end + timedelta(days=1)


def split_into_periods(start_date: date, end_date: date, granularity: GranularityLike) -> List[PeriodWindow]:
    """
    Split a date range into ordered calendar windows.

    Raises:
        ValueError: If start_date is after end_date
    """
    if start_date > end_date:
        raise ValueError(f"start_date {start_date} is after end_date {end_date}")
    return list(iter_periods(start_date, end_date, granularity))


def period_bounds(label: str, granularity: GranularityLike) -> Tuple[date, date]:
    """
    Full (unclamped) date range of a period label.

    Raises:
        ValueError: If the label does not match the granularity's format
    """
    granularity = Granularity(granularity)

    if granularity is Granularity.YEARLY:
        match = _YEAR_LABEL.match(label)
        if match:
            year = int(match.group(1))
            return date(year, 1, 1), date(year, 12, 31)

    elif granularity is Granularity.QUARTERLY:
        match = _QUARTER_LABEL.match(label)
        if match:
            year, quarter = int(match.group(1)), int(match.group(2))
            first_month = (quarter - 1) * 3 + 1
            start = date(year, first_month, 1)
            return start, _unit_end(start, granularity)

    else:
        match = _MONTH_LABEL.match(label)
        if match and 1 <= int(match.group(2)) <= 12:
            start = date(int(match.group(1)), int(match.group(2)), 1)
            return start, _unit_end(start, granularity)

    raise ValueError(f"Invalid {granularity.value} period label: {label!r}")
