"""
Tests for amy/coupons.py report building and the coupon models.
"""
import pytest

from amy.coupons import (
    aggregate_by_period,
    build_coupon_report,
    coupon_period_key,
    filter_redemptions,
    frequent_coupon_codes,
    load_historical,
    top_coupons,
)
from amy.exceptions import CouponDataError
from amy.models import CouponRedemption, CouponSource


def _redemption(id, code, amount, redeemed_at, source=CouponSource.LIVE):
    return CouponRedemption(
        id=id, coupon_code=code, discount_amount=amount, redeemed_at=redeemed_at, source=source
    )


@pytest.fixture
def historical():
    return [
        _redemption("hist-1", "SAVE10", 10.0, "2023-11-03 10:00:00", CouponSource.HISTORICAL),
        _redemption("hist-2", "save10", 10.0, "2023-12-20 09:30:00", CouponSource.HISTORICAL),
        _redemption("hist-3", "WELCOME", 15.0, "2024-01-05 12:00:00", CouponSource.HISTORICAL),
    ]


@pytest.fixture
def live():
    return [
        _redemption("live-a", "SAVE10", 10.0, "2024-01-15T08:00:00Z"),
        _redemption("live-b", "SPRING", 20.0, "2024-03-02T16:45:00Z"),
        _redemption("live-c", "save10", 12.5, "2024-04-10T11:00:00Z"),
    ]


class TestCouponRedemption:
    """Tests for normalising both sources."""

    def test_from_historical(self):
        item = CouponRedemption.from_historical({
            "entryId": "812",
            "formId": "4",
            "discountCode": "SAVE10",
            "calculatedDiscount": 12.5,
            "firstName": "Ann",
            "email": "ann@example.com",
            "dateCreated": '"2023-11-03 10:00:00"',
        })

        assert item.id == "hist-812"
        assert item.discount_amount == 12.5
        assert item.redeemed_at == "2023-11-03 10:00:00"
        assert item.source is CouponSource.HISTORICAL
        assert item.last_name is None

    def test_historical_without_discount_defaults_to_ten(self):
        item = CouponRedemption.from_historical(
            {"entryId": "1", "discountCode": "X", "calculatedDiscount": None, "dateCreated": "2023-01-01"}
        )
        assert item.discount_amount == 10.0

    def test_historical_without_date_skipped(self):
        assert CouponRedemption.from_historical({"entryId": "1", "discountCode": "X", "dateCreated": None}) is None

    def test_from_live(self):
        item = CouponRedemption.from_live({
            "_id": "65ab",
            "couponCode": "SPRING",
            "discountAmount": 20,
            "discountType": "fixed",
            "redeemedAt": "2024-03-02T16:45:00Z",
            "source": "checkout",
        })

        assert item.id == "live-65ab"
        assert item.discount_amount == 20.0
        assert item.source is CouponSource.LIVE
        assert item.to_dict()["couponCode"] == "SPRING"
        assert item.to_dict()["source"] == "live"


class TestFilters:
    """Tests for filter_redemptions."""

    def test_date_bounds_inclusive(self, historical, live):
        kept = filter_redemptions(historical + live, start_date="2024-01-05", end_date="2024-03-02")
        assert [item.id for item in kept] == ["hist-3", "live-a", "live-b"]

    def test_source(self, historical, live):
        kept = filter_redemptions(historical + live, source=CouponSource.HISTORICAL)
        assert {item.source for item in kept} == {CouponSource.HISTORICAL}

    def test_code_case_insensitive(self, historical, live):
        kept = filter_redemptions(historical + live, coupon_code="Save10")
        assert [item.id for item in kept] == ["hist-1", "hist-2", "live-a", "live-c"]

    def test_no_filters(self, historical, live):
        assert len(filter_redemptions(historical + live)) == 6


class TestAggregation:
    """Tests for period series and code rankings."""

    @pytest.mark.parametrize("granularity,expected", [
        ("daily", "2024-04-10"),
        ("monthly", "2024-04"),
        ("quarterly", "2024-Q2"),
        ("yearly", "2024"),
    ])
    def test_period_key(self, granularity, expected):
        assert coupon_period_key("2024-04-10T11:00:00Z", granularity) == expected

    def test_period_key_without_date(self):
        assert coupon_period_key("", "monthly") is None
        assert coupon_period_key("yesterday", "monthly") is None

    def test_aggregate_by_period(self, historical, live):
        series = aggregate_by_period(historical + live, "quarterly")

        assert series == [
            {"period": "2023-Q4", "redemptions": 2, "discountValue": 20.0},
            {"period": "2024-Q1", "redemptions": 3, "discountValue": 45.0},
            {"period": "2024-Q2", "redemptions": 1, "discountValue": 12.5},
        ]

    def test_top_coupons(self, historical, live):
        ranked = top_coupons(historical + live)

        assert ranked[0] == {"code": "SAVE10", "count": 4, "totalDiscount": 42.5}
        assert [item["code"] for item in ranked[1:]] == ["WELCOME", "SPRING"]

    def test_top_coupons_limit(self):
        redemptions = [_redemption(str(i), f"CODE{i}", 1.0, "2024-01-01") for i in range(25)]
        assert len(top_coupons(redemptions)) == 20

    def test_frequent_codes(self, historical, live):
        assert frequent_coupon_codes(historical + live) == ["SAVE10"]


class TestBuildReport:
    """Tests for build_coupon_report."""

    def test_summary(self, historical, live):
        report = build_coupon_report(historical, live, start_date="2024-01-01")

        assert report["stats"] == {
            "totalRedemptions": 4,
            "totalDiscount": 57.5,
            "uniqueCoupons": 3,
            "avgDiscount": 14.38,
        }
        assert report["dateRange"] == {"earliest": "2024-01-05 12:00:00", "latest": "2024-04-10T11:00:00Z"}
        assert report["sourceBreakdown"] == {"historical": 1, "live": 3}
        assert report["originalSourceBreakdown"] == {"historical": 3, "live": 3}
        assert report["allCouponCodes"] == ["SAVE10"]
        assert report["granularity"] == "monthly"

    def test_recent_redemptions_newest_first(self, historical, live):
        report = build_coupon_report(historical, live)
        assert [item["id"] for item in report["redemptions"]][:2] == ["live-c", "live-b"]

    def test_recent_redemptions_capped(self):
        live = [_redemption(f"live-{i}", "X", 1.0, f"2024-01-01T00:{i // 60:02d}:{i % 60:02d}") for i in range(150)]

        recent = build_coupon_report([], live)["redemptions"]
        exported = build_coupon_report([], live, export=True)["redemptions"]

        assert len(recent) == 100
        assert recent[0]["id"] == "live-149"
        assert len(exported) == 150
        assert exported[0]["id"] == "live-0"

    def test_empty(self):
        report = build_coupon_report([], [])

        assert report["stats"]["avgDiscount"] == 0
        assert report["dateRange"] == {"earliest": None, "latest": None}
        assert report["periodData"] == []


class TestLoadHistorical:
    """Tests for reading the historical export."""

    def test_reads_entries(self, tmp_path):
        path = tmp_path / "historical-coupons.json"
        path.write_text(
            '[{"entryId": "1", "discountCode": "SAVE10", "calculatedDiscount": 10, "dateCreated": "2023-11-03"},'
            ' {"entryId": "2", "discountCode": "SAVE10", "dateCreated": null}]'
        )

        items = load_historical(path)

        assert [item.id for item in items] == ["hist-1"]

    def test_missing_file_is_empty(self, tmp_path):
        assert load_historical(tmp_path / "absent.json") == []

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        with pytest.raises(CouponDataError):
            load_historical(path)

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "object.json"
        path.write_text('{"entries": []}')

        with pytest.raises(CouponDataError):
            load_historical(path)
