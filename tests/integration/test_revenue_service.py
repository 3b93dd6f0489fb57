"""
Integration tests for amy/revenue_service.py and amy/reports.py

Exercises bucketing, per-location fetching, caching, failure isolation and
cross-location sums with a mocked QuickBooks fetcher.
"""
import pytest
from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

import httpx

from amy.cache import ResponseCache
from amy.exceptions import (
    NotConnectedError,
    QuickBooksAPIError,
    RateLimitedError,
    RefreshFailedError,
    UnauthorizedError,
)
from amy.models import AccountingMethod, DataStatus, Granularity
from amy.quickbooks import QuickBooksClient
from amy.reports import ReportFetcher
from amy.revenue_service import RevenueService

LOCATIONS = ["MedRock FL", "MedRock TN", "MedRock TX"]


def _fetcher(reports, failures=None):
    """
    Fetcher returning `reports[location]` (a tree, or a callable of the
    window start date) and raising `failures[location]`.
    """
    failures = failures or {}

    async def fetch(location, start_date, end_date, accounting_method="Accrual"):
        if location in failures:
            raise failures[location]
        report = reports[location]
        return report(start_date) if callable(report) else report

    fetcher = MagicMock()
    fetcher.fetch_profit_and_loss = AsyncMock(side_effect=fetch)
    fetcher.fetch_company_info = AsyncMock()
    return fetcher


def _service(fetcher, monotonic, token_store=None, max_concurrency=3):
    return RevenueService(
        fetcher,
        token_store or MagicMock(),
        ResponseCache(ttl_seconds=3600, max_entries=50, clock=monotonic),
        locations=LOCATIONS,
        max_concurrency=max_concurrency,
    )


class TestLocationFinancials:
    """Tests for a single location's revenue series."""

    @pytest.mark.asyncio
    async def test_fetches_each_window_in_order(self, pnl_factory, monotonic):
        revenue_by_month = {1: 100.0, 2: 200.0, 3: 300.0}

        def report(start):
            return pnl_factory(income_lines=[("Sales", revenue_by_month[start.month])], cogs_total="10.00")

        fetcher = _fetcher({"MedRock FL": report})
        service = _service(fetcher, monotonic)

        result = await service.get_location_financials(
            "MedRock FL", date(2024, 1, 15), date(2024, 3, 10), Granularity.MONTHLY
        )

        assert result.status is DataStatus.FRESH
        assert [item.period for item in result.data] == ["2024-01", "2024-02", "2024-03"]
        assert [item.revenue for item in result.data] == [100.0, 200.0, 300.0]
        assert result.data[0].gross_profit == 90.0

        windows = [(c.args[1], c.args[2]) for c in fetcher.fetch_profit_and_loss.call_args_list]
        assert windows == [
            (date(2024, 1, 15), date(2024, 1, 31)),
            (date(2024, 2, 1), date(2024, 2, 29)),
            (date(2024, 3, 1), date(2024, 3, 10)),
        ]

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, sample_pnl, monotonic):
        fetcher = _fetcher({"MedRock FL": sample_pnl})
        service = _service(fetcher, monotonic)

        first = await service.get_location_financials("MedRock FL", date(2024, 1, 1), date(2024, 2, 29))
        monotonic.advance(90)
        second = await service.get_location_financials("MedRock FL", date(2024, 1, 1), date(2024, 2, 29))

        assert fetcher.fetch_profit_and_loss.await_count == 2  # one per month, first call only
        assert second.status is DataStatus.CACHED
        assert second.cache_age_seconds == 90
        assert [item.to_dict() for item in second.data] == [item.to_dict() for item in first.data]

    @pytest.mark.asyncio
    async def test_cache_expires(self, sample_pnl, monotonic):
        fetcher = _fetcher({"MedRock FL": sample_pnl})
        service = _service(fetcher, monotonic)

        await service.get_location_financials("MedRock FL", date(2024, 1, 1), date(2024, 1, 31))
        monotonic.advance(3600)
        result = await service.get_location_financials("MedRock FL", date(2024, 1, 1), date(2024, 1, 31))

        assert result.status is DataStatus.FRESH
        assert fetcher.fetch_profit_and_loss.await_count == 2

    @pytest.mark.asyncio
    async def test_accounting_methods_cached_separately(self, sample_pnl, monotonic):
        fetcher = _fetcher({"MedRock FL": sample_pnl})
        service = _service(fetcher, monotonic)

        await service.get_location_financials(
            "MedRock FL", date(2024, 1, 1), date(2024, 1, 31), accounting_method=AccountingMethod.ACCRUAL
        )
        result = await service.get_location_financials(
            "MedRock FL", date(2024, 1, 1), date(2024, 1, 31), accounting_method=AccountingMethod.CASH
        )

        assert result.status is DataStatus.FRESH
        assert fetcher.fetch_profit_and_loss.call_args.args[3] == "Cash"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        NotConnectedError("MedRock FL"),
        RefreshFailedError("Failed to refresh QuickBooks token for MedRock FL", location="MedRock FL"),
    ])
    async def test_not_connected(self, error, monotonic):
        service = _service(_fetcher({}, {"MedRock FL": error}), monotonic)

        result = await service.get_location_financials("MedRock FL", date(2024, 1, 1), date(2024, 1, 31))

        assert result.status is DataStatus.NOT_CONNECTED
        assert result.error_code == "not_connected"
        assert result.data == []

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, sample_pnl, monotonic):
        failures = {"MedRock FL": QuickBooksAPIError("QuickBooks API returned 500", status_code=500)}
        fetcher = _fetcher({"MedRock FL": sample_pnl}, failures)
        service = _service(fetcher, monotonic)

        first = await service.get_location_financials("MedRock FL", date(2024, 1, 1), date(2024, 1, 31))
        failures.clear()
        second = await service.get_location_financials("MedRock FL", date(2024, 1, 1), date(2024, 1, 31))

        assert first.status is DataStatus.ERROR
        assert first.error_code == "error"
        assert second.status is DataStatus.FRESH


class TestRevenueAcrossLocations:
    """Tests for the all-locations view."""

    @pytest.mark.asyncio
    async def test_sums_successful_locations(self, pnl_factory, monotonic):
        fetcher = _fetcher({
            "MedRock FL": pnl_factory(income_lines=[("Sales", 1000.0), ("Shipping Income", 100.0)], cogs_total="300"),
            "MedRock TN": pnl_factory(income_lines=[("Sales", 500.0)], cogs_total="200"),
            "MedRock TX": pnl_factory(),
        })
        service = _service(fetcher, monotonic)

        report = await service.get_revenue(None, date(2024, 1, 1), date(2024, 2, 29))

        assert [item.period for item in report.data] == ["2024-01", "2024-02"]
        assert report.data[0].revenue == 1600.0
        assert report.data[0].cost_of_goods == 500.0
        assert report.data[0].shipping_revenue == 100.0
        assert report.totals == {"revenue": 3200.0, "cost_of_goods": 1000.0, "gross_profit": 2200.0}
        assert [result.location for result in report.results] == LOCATIONS
        assert report.errors == {}

    @pytest.mark.asyncio
    async def test_failed_location_isolated(self, pnl_factory, monotonic):
        fetcher = _fetcher(
            {"MedRock FL": pnl_factory(income_lines=[("Sales", 1000.0)])},
            {
                "MedRock TN": NotConnectedError("MedRock TN"),
                "MedRock TX": RateLimitedError("MedRock TX"),
            },
        )
        service = _service(fetcher, monotonic, max_concurrency=1)

        report = await service.get_revenue(None, date(2024, 1, 1), date(2024, 1, 31))
        payload = report.to_dict()

        assert report.totals["revenue"] == 1000.0
        assert set(report.errors) == {"MedRock TN", "MedRock TX"}
        statuses = {result.location: result.status for result in report.results}
        assert statuses == {
            "MedRock FL": DataStatus.FRESH,
            "MedRock TN": DataStatus.NOT_CONNECTED,
            "MedRock TX": DataStatus.ERROR,
        }
        assert report.results[2].error_code == "rate_limited"
        assert payload["success"] is True
        assert payload["location"] == "all"
        assert payload["dateRange"] == {"start": "2024-01-01", "end": "2024-01-31"}
        assert payload["accountingMethod"] == "Accrual"
        assert report.connected is True

    @pytest.mark.asyncio
    async def test_nothing_connected(self, monotonic):
        fetcher = _fetcher({}, {name: NotConnectedError(name) for name in LOCATIONS})
        report = await _service(fetcher, monotonic).get_revenue(None, date(2024, 1, 1), date(2024, 1, 31))

        assert report.data == []
        assert report.connected is False
        assert report.cached is False

    @pytest.mark.asyncio
    async def test_single_location(self, sample_pnl, monotonic):
        fetcher = _fetcher({"MedRock TN": sample_pnl})
        report = await _service(fetcher, monotonic).get_revenue(
            "MedRock TN", date(2024, 1, 1), date(2024, 12, 31), Granularity.QUARTERLY
        )

        assert [item.period for item in report.data] == ["2024-Q1", "2024-Q2", "2024-Q3", "2024-Q4"]
        assert [result.location for result in report.results] == ["MedRock TN"]
        assert {c.args[0] for c in fetcher.fetch_profit_and_loss.call_args_list} == {"MedRock TN"}

    @pytest.mark.asyncio
    async def test_cached_flag_and_age(self, sample_pnl, monotonic):
        fetcher = _fetcher({name: sample_pnl for name in LOCATIONS})
        service = _service(fetcher, monotonic)

        first = await service.get_revenue(None, date(2024, 1, 1), date(2024, 1, 31))
        monotonic.advance(30)
        second = await service.get_revenue(None, date(2024, 1, 1), date(2024, 1, 31))

        assert first.cached is False
        assert second.cached is True
        assert second.cache_age_seconds == 30
        assert second.totals == first.totals


class TestUnexpectedFailures:
    """Failures outside the QuickBooks error taxonomy stay with their location."""

    @pytest.mark.asyncio
    async def test_non_json_body_isolated(self, sample_pnl, monotonic, credential_factory):
        """An HTML page from one realm does not sink the other locations."""
        credentials = {
            "MedRock FL": credential_factory(location="MedRock FL", realm_id="realm-fl"),
            "MedRock TX": credential_factory(location="MedRock TX", realm_id="realm-tx"),
        }
        token_store = MagicMock()
        token_store.get_valid_credential = AsyncMock(side_effect=lambda location: credentials[location])

        def handler(request):
            if "/company/realm-tx/" in request.url.path:
                return httpx.Response(
                    200, text="<html>Service Unavailable</html>", headers={"Content-Type": "text/html"}
                )
            return httpx.Response(200, json=sample_pnl)

        client = QuickBooksClient(client_id="cid", client_secret="secret")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client._client = http
            service = RevenueService(
                ReportFetcher(token_store, client),
                token_store,
                ResponseCache(ttl_seconds=3600, max_entries=50, clock=monotonic),
                locations=["MedRock FL", "MedRock TX"],
                max_concurrency=2,
            )
            report = await service.get_revenue(None, date(2024, 1, 1), date(2024, 1, 31))

        statuses = {result.location: result.status for result in report.results}
        assert statuses == {"MedRock FL": DataStatus.FRESH, "MedRock TX": DataStatus.ERROR}
        assert report.errors == {"MedRock TX": "QuickBooks returned a non-JSON body"}
        assert report.totals["revenue"] == 1200.0

    @pytest.mark.asyncio
    async def test_unexpected_error_isolated(self, sample_pnl, monotonic):
        fetcher = _fetcher(
            {"MedRock FL": sample_pnl, "MedRock TX": sample_pnl},
            {"MedRock TN": RuntimeError("IO Error: could not read database file")},
        )
        service = _service(fetcher, monotonic)

        report = await service.get_revenue(None, date(2024, 1, 1), date(2024, 1, 31))

        tennessee = report.results[1]
        assert tennessee.status is DataStatus.ERROR
        assert tennessee.error_code == "error"
        assert "could not read" not in tennessee.error
        assert report.totals["revenue"] == 2400.0

    @pytest.mark.asyncio
    async def test_summary_unexpected_error_isolated(self, sample_pnl, monotonic):
        token_store = MagicMock()
        token_store.connected_locations = AsyncMock(return_value=["MedRock FL", "MedRock TN"])
        fetcher = _fetcher({"MedRock FL": sample_pnl}, {"MedRock TN": ValueError("bad payload")})
        service = _service(fetcher, monotonic, token_store=token_store)

        summary = await service.get_company_summary(date(2024, 1, 1), date(2024, 3, 31))

        assert [item.location for item in summary.locations] == ["MedRock FL"]
        assert list(summary.errors) == ["MedRock TN"]
        assert summary.failures[0].location == "MedRock TN"
        assert summary.totals.revenue == 1200.0


class TestCompanySummary:
    """Tests for get_company_summary."""

    @pytest.mark.asyncio
    async def test_summary_with_failure(self, sample_pnl, monotonic):
        token_store = MagicMock()
        token_store.connected_locations = AsyncMock(return_value=["MedRock FL", "MedRock TN"])
        fetcher = _fetcher(
            {"MedRock FL": sample_pnl},
            {"MedRock TN": QuickBooksAPIError("QuickBooks API returned 500", status_code=500)},
        )
        service = _service(fetcher, monotonic, token_store=token_store)

        summary = await service.get_company_summary(date(2024, 1, 1), date(2024, 3, 31))
        payload = summary.to_dict()

        assert [item.location for item in summary.locations] == ["MedRock FL"]
        assert summary.errors == {"MedRock TN": "QuickBooks API returned 500"}
        assert len(summary.failures) == 1
        assert summary.totals.location == "TOTAL"
        assert summary.totals.revenue == 1200.0
        assert summary.totals.net_income == 400.0
        assert summary.totals.gross_margin_percent == pytest.approx(66.6667, rel=1e-4)
        assert payload["accounting_method"] == "Cash"
        assert payload["period"] == "2024-01-01 to 2024-03-31"
        assert "message" not in payload
        assert fetcher.fetch_profit_and_loss.call_args_list[0].args[1:] == (
            date(2024, 1, 1), date(2024, 3, 31), "Cash"
        )

    @pytest.mark.asyncio
    async def test_summary_cached(self, sample_pnl, monotonic):
        token_store = MagicMock()
        token_store.connected_locations = AsyncMock(return_value=["MedRock FL"])
        fetcher = _fetcher({"MedRock FL": sample_pnl})
        service = _service(fetcher, monotonic, token_store=token_store)

        first = await service.get_company_summary(date(2024, 1, 1), date(2024, 3, 31))
        second = await service.get_company_summary(date(2024, 1, 1), date(2024, 3, 31))

        assert fetcher.fetch_profit_and_loss.await_count == 1
        assert first.locations[0].cached is False
        assert second.locations[0].cached is True
        assert second.totals.revenue == first.totals.revenue

    @pytest.mark.asyncio
    async def test_no_connected_locations(self, monotonic):
        token_store = MagicMock()
        token_store.connected_locations = AsyncMock(return_value=[])
        service = _service(_fetcher({}), monotonic, token_store=token_store)

        summary = await service.get_company_summary(date(2024, 1, 1), date(2024, 1, 31))

        assert summary.locations == []
        assert summary.totals.revenue == 0.0
        assert "No QuickBooks locations connected" in summary.to_dict()["message"]


class TestConnections:
    """Tests for connection status, test-connection and disconnect."""

    @pytest.mark.asyncio
    async def test_status(self, credential_factory, monotonic):
        florida = credential_factory()
        token_store = MagicMock()
        token_store.get_credential = AsyncMock(side_effect=lambda name: florida if name == "MedRock FL" else None)
        service = _service(_fetcher({}), monotonic, token_store=token_store)

        status = await service.get_connection_status()

        assert status["status"] == {"MedRock FL": True, "MedRock TN": False, "MedRock TX": False}
        assert status["details"]["MedRock FL"]["realmId"] == "realm-1"
        assert status["details"]["MedRock TN"] == {
            "connected": False, "realmId": None, "companyName": None, "expiresAt": None,
        }

    @pytest.mark.asyncio
    async def test_connection_saves_company_name(self, credential_factory, monotonic):
        stored = credential_factory()
        token_store = MagicMock()
        token_store.get_credential = AsyncMock(return_value=stored)
        token_store.store = AsyncMock()
        fetcher = _fetcher({})
        fetcher.fetch_company_info.return_value = {"CompanyInfo": {"CompanyName": "Medrock FLORIDA"}}
        service = _service(fetcher, monotonic, token_store=token_store)

        result = await service.test_connection("MedRock FL")

        assert result == {
            "success": True,
            "location": "MedRock FL",
            "companyName": "Medrock FLORIDA",
            "message": "Connection is working",
        }
        token_store.store.assert_awaited_once()
        assert token_store.store.call_args.args[0].company_name == "Medrock FLORIDA"

    @pytest.mark.asyncio
    async def test_disconnect_drops_cached_results(self, sample_pnl, monotonic):
        token_store = MagicMock()
        token_store.disconnect = AsyncMock(return_value=True)
        fetcher = _fetcher({"MedRock FL": sample_pnl})
        service = _service(fetcher, monotonic, token_store=token_store)

        await service.get_location_financials("MedRock FL", date(2024, 1, 1), date(2024, 1, 31))
        assert await service.disconnect("MedRock FL") is True
        result = await service.get_location_financials("MedRock FL", date(2024, 1, 1), date(2024, 1, 31))

        assert result.status is DataStatus.FRESH
        assert fetcher.fetch_profit_and_loss.await_count == 2


class TestReportFetcher:
    """Tests for ReportFetcher."""

    @pytest.mark.asyncio
    async def test_passes_credential(self, credential, sample_pnl):
        token_store = MagicMock()
        token_store.get_valid_credential = AsyncMock(return_value=credential)
        client = MagicMock()
        client.get_profit_and_loss = AsyncMock(return_value=sample_pnl)

        result = await ReportFetcher(token_store, client).fetch_profit_and_loss(
            "MedRock FL", date(2024, 1, 1), date(2024, 1, 31), "Cash"
        )

        assert result == sample_pnl
        client.get_profit_and_loss.assert_awaited_once_with(
            "access-old", "realm-1", "2024-01-01", "2024-01-31", "Cash", location="MedRock FL"
        )

    @pytest.mark.asyncio
    async def test_unauthorized_marks_token_expired(self, credential):
        token_store = MagicMock()
        token_store.get_valid_credential = AsyncMock(return_value=credential)
        token_store.mark_expired = AsyncMock()
        client = MagicMock()
        client.get_profit_and_loss = AsyncMock(side_effect=UnauthorizedError("MedRock FL"))

        with pytest.raises(UnauthorizedError):
            await ReportFetcher(token_store, client).fetch_profit_and_loss(
                "MedRock FL", date(2024, 1, 1), date(2024, 1, 31)
            )

        token_store.mark_expired.assert_awaited_once_with("MedRock FL")

    @pytest.mark.asyncio
    async def test_missing_realm_is_not_connected(self, credential_factory):
        token_store = MagicMock()
        token_store.get_valid_credential = AsyncMock(return_value=credential_factory(realm_id=""))
        client = MagicMock()
        client.get_company_info = AsyncMock()

        with pytest.raises(NotConnectedError):
            await ReportFetcher(token_store, client).fetch_company_info("MedRock FL")

        client.get_company_info.assert_not_awaited()
