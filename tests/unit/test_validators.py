"""
Tests for amy.validators module.
"""
import pytest
from datetime import date

from amy.models import AccountingMethod, CouponSource, Granularity
from amy.validators import (
    validate_accounting_method,
    validate_choice,
    validate_coupon_source,
    validate_date_range,
    validate_date_string,
    validate_granularity,
    validate_location,
    validate_year,
)
from amy.exceptions import ValidationError

LOCATIONS = ["MedRock FL", "MedRock TN", "MedRock TX"]


class TestValidateDateString:
    """Tests for validate_date_string function."""

    def test_valid_date(self):
        """Valid date string should return date object."""
        assert validate_date_string("2024-01-15") == date(2024, 1, 15)

    def test_invalid_format(self):
        """Invalid format should raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            validate_date_string("15-01-2024", "startDate")
        assert "Invalid date format" in str(exc_info.value)
        assert exc_info.value.field == "startDate"

    def test_invalid_date(self):
        """Invalid date should raise ValidationError."""
        with pytest.raises(ValidationError):
            validate_date_string("2024-02-30")

    def test_empty_string(self):
        """Empty string should raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            validate_date_string("")
        assert "required" in str(exc_info.value).lower()

    def test_none_value(self):
        with pytest.raises(ValidationError):
            validate_date_string(None)

    def test_non_string(self):
        """Non-string should raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            validate_date_string(12345)
        assert "string" in str(exc_info.value).lower()


class TestValidateDateRange:
    """Tests for validate_date_range function."""

    def test_valid_range(self):
        """Valid date range should return tuple of dates."""
        start, end = validate_date_range("2024-01-15", "2024-03-10")
        assert start == date(2024, 1, 15)
        assert end == date(2024, 3, 10)

    def test_same_day(self):
        start, end = validate_date_range("2024-01-15", "2024-01-15")
        assert start == end == date(2024, 1, 15)

    def test_start_after_end(self):
        """Start date after end date should raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            validate_date_range("2024-01-31", "2024-01-01")
        assert "before or equal" in str(exc_info.value)

    def test_missing_end(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_date_range("2024-01-01", None)
        assert exc_info.value.field == "endDate"

    def test_range_too_large(self):
        """Range exceeding max_days should raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            validate_date_range("2023-01-01", "2024-01-31", max_days=30)
        assert "exceed" in str(exc_info.value).lower()

    def test_multi_year_range_allowed_by_default(self):
        validate_date_range("2021-01-01", "2024-12-31")


class TestValidateGranularity:
    """Tests for validate_granularity function."""

    @pytest.mark.parametrize("value", [None, ""])
    def test_defaults_to_monthly(self, value):
        assert validate_granularity(value) is Granularity.MONTHLY

    def test_case_insensitive(self):
        assert validate_granularity("Quarterly") is Granularity.QUARTERLY
        assert validate_granularity(" yearly ") is Granularity.YEARLY

    def test_invalid(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_granularity("weekly")
        assert "monthly" in str(exc_info.value)


class TestValidateAccountingMethod:
    """Tests for validate_accounting_method function."""

    def test_default_accrual(self):
        assert validate_accounting_method(None) is AccountingMethod.ACCRUAL

    def test_custom_default(self):
        assert validate_accounting_method("", default=AccountingMethod.CASH) is AccountingMethod.CASH

    def test_case_insensitive(self):
        assert validate_accounting_method("cash") is AccountingMethod.CASH
        assert validate_accounting_method("ACCRUAL") is AccountingMethod.ACCRUAL

    def test_invalid(self):
        with pytest.raises(ValidationError):
            validate_accounting_method("hybrid")


class TestValidateLocation:
    """Tests for validate_location function."""

    def test_known_location(self):
        assert validate_location("MedRock TN", LOCATIONS) == "MedRock TN"

    @pytest.mark.parametrize("value", [None, "", "all"])
    def test_all_locations(self, value):
        assert validate_location(value, LOCATIONS) is None

    def test_required(self):
        with pytest.raises(ValidationError):
            validate_location("all", LOCATIONS, allow_none=False)

    def test_unknown_location(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_location("MedRock NY", LOCATIONS)
        assert "MedRock FL" in str(exc_info.value)


class TestValidateYear:
    """Tests for validate_year function."""

    def test_none(self):
        assert validate_year(None) is None
        assert validate_year("") is None

    def test_valid(self):
        assert validate_year("2024") == 2024
        assert validate_year(2023) == 2023

    @pytest.mark.parametrize("value", ["24x", "1999", "3000", "-1"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            validate_year(value)


class TestValidateCouponSource:
    """Tests for validate_coupon_source function."""

    @pytest.mark.parametrize("value", [None, "", "all"])
    def test_no_filter(self, value):
        assert validate_coupon_source(value) is None

    def test_case_insensitive(self):
        assert validate_coupon_source("Historical") is CouponSource.HISTORICAL

    def test_unknown(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_coupon_source("paypal")
        assert exc_info.value.field == "source"


class TestValidateChoice:
    """Tests for validate_choice function."""

    def test_default(self):
        assert validate_choice(None, ["daily", "monthly"], "monthly", "granularity") == "monthly"

    def test_normalizes(self):
        assert validate_choice(" Daily ", ["daily", "monthly"], "monthly", "granularity") == "daily"

    def test_unknown(self):
        with pytest.raises(ValidationError):
            validate_choice("weekly", ["daily", "monthly"], "monthly", "granularity")
