"""
Core library for the AMY accounting service.

This package contains the QuickBooks reconciliation logic used by web/:
- exceptions: Custom exception hierarchy
- validators: Input validation functions
- periods: Calendar bucketing of date ranges
- report_parser: Profit & Loss report extraction
- reconciliation: Internal vs QuickBooks revenue comparison
- config: Centralized configuration
"""

# Import in dependency order
from amy.exceptions import (
    QuickBooksError,
    NotConnectedError,
    RefreshFailedError,
    UnauthorizedError,
    RateLimitedError,
    QuickBooksAPIError,
    QuickBooksConnectionError,
    ValidationError,
)

from amy.validators import (
    validate_date_string,
    validate_date_range,
    validate_granularity,
    validate_accounting_method,
    validate_location,
)

from amy.periods import split_into_periods
from amy.report_parser import extract_revenue, extract_cogs
from amy.reconciliation import reconcile

from amy.config import config

__all__ = [
    # Exceptions
    "QuickBooksError",
    "NotConnectedError",
    "RefreshFailedError",
    "UnauthorizedError",
    "RateLimitedError",
    "QuickBooksAPIError",
    "QuickBooksConnectionError",
    "ValidationError",
    # Validators
    "validate_date_string",
    "validate_date_range",
    "validate_granularity",
    "validate_accounting_method",
    "validate_location",
    # Reconciliation
    "split_into_periods",
    "extract_revenue",
    "extract_cogs",
    "reconcile",
    # Config
    "config",
]
