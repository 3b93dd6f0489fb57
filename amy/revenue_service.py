"""
QuickBooks revenue aggregation across locations.

RevenueService ties the pieces together: it buckets a date range, fetches
one ProfitAndLoss report per window per location, extracts the figures,
caches successful per-location results and sums locations for the
all-locations view. A failing location never aborts the others; its
LocationResult carries the error and it contributes nothing to the sum.
"""
import dataclasses
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Union

from amy.cache import ResponseCache, cache_key
from amy.config import config
from amy.exceptions import (
    NotConnectedError,
    QueryTimeoutError,
    QuickBooksError,
    RefreshFailedError,
)
from amy.models import (
    AccountingMethod,
    CompanyFinancials,
    DataStatus,
    Granularity,
    LocationResult,
    PeriodFinancials,
)
from amy.observability import Timer, get_logger, metrics
from amy.periods import split_into_periods
from amy.reconciliation import sum_across_locations, totals_of
from amy.report_parser import extract_company_financials, extract_financials
from amy.reports import ReportFetcher
from amy.resilience import gather_bounded
from amy.token_store import TokenStore

logger = get_logger(__name__)

SUMMARY_CACHE_KIND = "summary"
TOTAL_LOCATION = "TOTAL"


def _method_value(method: Union[AccountingMethod, str]) -> str:
    return method.value if isinstance(method, AccountingMethod) else str(method)


@dataclass
class RevenueReport:
    """Revenue by period for one location or for all of them."""
    location: Optional[str]
    granularity: Granularity
    start_date: date
    end_date: date
    accounting_method: str
    data: List[PeriodFinancials]
    results: List[LocationResult] = field(default_factory=list)

    @property
    def totals(self) -> Dict[str, float]:
        return totals_of(self.data)

    @property
    def errors(self) -> Dict[str, str]:
        return {result.location: result.error for result in self.results if not result.ok}

    @property
    def cached(self) -> bool:
        """True when every successful location was served from cache."""
        ok = [result for result in self.results if result.ok]
        return bool(ok) and all(result.status is DataStatus.CACHED for result in ok)

    @property
    def cache_age_seconds(self) -> Optional[int]:
        """Age of the oldest cached contribution, if any."""
        ages = [
            result.cache_age_seconds for result in self.results
            if result.status is DataStatus.CACHED and result.cache_age_seconds is not None
        ]
        return max(ages) if ages else None

    @property
    def connected(self) -> bool:
        return any(result.status is not DataStatus.NOT_CONNECTED for result in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "location": self.location or "all",
            "data": [item.to_dict() for item in self.data],
            "totals": self.totals,
            "granularity": self.granularity.value,
            "accountingMethod": self.accounting_method,
            "dateRange": {
                "start": self.start_date.isoformat(),
                "end": self.end_date.isoformat(),
            },
            "locations": [result.to_dict() for result in self.results],
            "errors": self.errors,
            "cached": self.cached,
        }


@dataclass
class CompanySummary:
    """Full P&L summary per connected location plus the all-location total."""
    period: str
    accounting_method: str
    locations: List[CompanyFinancials]
    totals: CompanyFinancials
    errors: Dict[str, str] = field(default_factory=dict)
    failures: List[QuickBooksError] = field(default_factory=list)
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "locations": [item.to_dict() for item in self.locations],
            "totals": self.totals.to_dict(),
            "period": self.period,
            "accounting_method": self.accounting_method,
            "errors": self.errors,
        }
        if self.message:
            payload["message"] = self.message
        return payload


class RevenueService:
    """
    Revenue, company summary and connection operations over QuickBooks.

    Args:
        fetcher: ReportFetcher used for all QuickBooks calls
        token_store: TokenStore for connection state
        cache: Process-wide ResponseCache
        locations: Locations covered by the all-locations view, in output order
        max_concurrency: Locations fetched at once
    """

    def __init__(
        self,
        fetcher: ReportFetcher,
        token_store: TokenStore,
        cache: ResponseCache,
        locations: List[str] = None,
        max_concurrency: int = None,
    ):
        self.fetcher = fetcher
        self.token_store = token_store
        self.cache = cache
        self.locations = list(locations) if locations is not None else config.locations.names
        self.max_concurrency = max_concurrency or config.quickbooks.max_concurrent_requests

    # ═══════════════════════════════════════════════════════════════════════════
    # REVENUE BY PERIOD
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_location_financials(
        self,
        location: str,
        start_date: date,
        end_date: date,
        granularity: Granularity = Granularity.MONTHLY,
        accounting_method: Union[AccountingMethod, str] = AccountingMethod.ACCRUAL,
    ) -> LocationResult:
        """
        Per-period financials for one location with provenance.

        Windows are fetched one after another so a token refresh for the
        location completes before any dependent report call.
        """
        granularity = Granularity(granularity)
        method = _method_value(accounting_method)
        key = cache_key(location, start_date.isoformat(), end_date.isoformat(), granularity.value, method)

        cached = self.cache.get(key)
        if cached is not None:
            return LocationResult(
                location=location,
                status=DataStatus.CACHED,
                data=list(cached),
                cache_age_seconds=self.cache.age_seconds(key),
            )

        data: List[PeriodFinancials] = []
        try:
            for window in split_into_periods(start_date, end_date, granularity):
                with Timer("qbo_period_fetch", logger):
                    tree = await self.fetcher.fetch_profit_and_loss(
                        location, window.start_date, window.end_date, method
                    )
                data.append(extract_financials(tree, window.label))

        except (NotConnectedError, RefreshFailedError) as e:
            logger.warning(f"QuickBooks unavailable for {location}: {e}", extra={"location": location})
            metrics.record_error(NotConnectedError.error_code)
            return LocationResult(
                location=location,
                status=DataStatus.NOT_CONNECTED,
                error=e.message,
                error_code=NotConnectedError.error_code,
            )

        except QuickBooksError as e:
            logger.error(f"QuickBooks fetch failed for {location}: {e}", extra={"location": location})
            metrics.record_error(e.error_code)
            return LocationResult(
                location=location, status=DataStatus.ERROR, error=e.message, error_code=e.error_code
            )

        except QueryTimeoutError as e:
            logger.error(f"Credential lookup timed out for {location}: {e}", extra={"location": location})
            metrics.record_error("query_timeout")
            return LocationResult(
                location=location, status=DataStatus.ERROR, error=str(e), error_code="query_timeout"
            )

        except Exception as e:
            logger.error(
                f"Unexpected failure fetching QuickBooks data for {location}: {e}",
                extra={"location": location},
                exc_info=True,
            )
            metrics.record_error(type(e).__name__)
            return LocationResult(
                location=location,
                status=DataStatus.ERROR,
                error=f"Failed to load QuickBooks data for {location}",
                error_code=QuickBooksError.error_code,
            )

        self.cache.set(key, data)
        return LocationResult(location=location, status=DataStatus.FRESH, data=list(data), cache_age_seconds=0)

    async def get_revenue(
        self,
        location: Optional[str],
        start_date: date,
        end_date: date,
        granularity: Granularity = Granularity.MONTHLY,
        accounting_method: Union[AccountingMethod, str] = AccountingMethod.ACCRUAL,
    ) -> RevenueReport:
        """
        Revenue by period for one location, or summed over all locations.

        With `location=None` every configured location is fetched through a
        bounded fan-out. Results keep the configured location order.
        """
        granularity = Granularity(granularity)
        method = _method_value(accounting_method)
        targets = [location] if location else self.locations

        async def fetch(target: str) -> LocationResult:
            return await self.get_location_financials(target, start_date, end_date, granularity, method)

        results = await gather_bounded(fetch, targets, self.max_concurrency)

        if location:
            data = list(results[0].data)
        else:
            data = sum_across_locations(result.data for result in results if result.ok)

        failed = [result.location for result in results if not result.ok]
        logger.info(
            f"Revenue for {location or 'all locations'}: {len(data)} periods",
            extra={"granularity": granularity.value, "failed_locations": failed}
        )

        return RevenueReport(
            location=location,
            granularity=granularity,
            start_date=start_date,
            end_date=end_date,
            accounting_method=method,
            data=data,
            results=results,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # COMPANY SUMMARY
    # ═══════════════════════════════════════════════════════════════════════════

    async def _location_summary(
        self,
        location: str,
        start_date: date,
        end_date: date,
        method: str,
    ) -> CompanyFinancials:
        period = f"{start_date.isoformat()} to {end_date.isoformat()}"
        key = cache_key(location, start_date.isoformat(), end_date.isoformat(), SUMMARY_CACHE_KIND, method)

        cached = self.cache.get(key)
        if cached is not None:
            return dataclasses.replace(cached, cached=True)

        with Timer("qbo_company_summary", logger):
            tree = await self.fetcher.fetch_profit_and_loss(location, start_date, end_date, method)
        financials = extract_company_financials(tree, location, period, method)
        self.cache.set(key, financials)
        return financials

    async def get_company_summary(
        self,
        start_date: date,
        end_date: date,
        accounting_method: Union[AccountingMethod, str] = AccountingMethod.CASH,
    ) -> CompanySummary:
        """Company-wide P&L over every connected location."""
        method = _method_value(accounting_method)
        period = f"{start_date.isoformat()} to {end_date.isoformat()}"
        totals = CompanyFinancials(location=TOTAL_LOCATION, period=period, accounting_method=method)

        connected = await self.token_store.connected_locations()
        if not connected:
            return CompanySummary(
                period=period,
                accounting_method=method,
                locations=[],
                totals=totals,
                message="No QuickBooks locations connected. Please connect locations in Admin > QuickBooks.",
            )

        async def fetch(location: str):
            try:
                return await self._location_summary(location, start_date, end_date, method)
            except QuickBooksError as e:
                logger.error(f"Company summary failed for {location}: {e}", extra={"location": location})
                metrics.record_error(e.error_code)
                return e
            except Exception as e:
                logger.error(
                    f"Unexpected company summary failure for {location}: {e}",
                    extra={"location": location},
                    exc_info=True,
                )
                metrics.record_error(type(e).__name__)
                return QuickBooksError(
                    f"Failed to load QuickBooks data for {location}", details=str(e), location=location
                )

        outcomes = await gather_bounded(fetch, connected, self.max_concurrency)

        summary = CompanySummary(period=period, accounting_method=method, locations=[], totals=totals)
        for location, outcome in zip(connected, outcomes):
            if isinstance(outcome, QuickBooksError):
                summary.errors[location] = outcome.message
                summary.failures.append(outcome)
                continue
            summary.locations.append(outcome)
            totals.revenue += outcome.revenue
            totals.product_revenue += outcome.product_revenue
            totals.shipping_revenue += outcome.shipping_revenue
            totals.cogs += outcome.cogs
            totals.gross_profit += outcome.gross_profit
            totals.payroll_total += outcome.payroll_total
            totals.operating_expenses_total += outcome.operating_expenses_total
            totals.net_income += outcome.net_income

        totals.recalculate_margins()
        return summary

    # ═══════════════════════════════════════════════════════════════════════════
    # CONNECTIONS
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_connection_status(self) -> Dict[str, Any]:
        """
        Connection state per configured location.

        Reads stored credentials only; no refresh or QuickBooks call.
        """
        status: Dict[str, bool] = {}
        details: Dict[str, Dict[str, Any]] = {}

        for location in self.locations:
            credential = await self.token_store.get_credential(location)
            status[location] = credential is not None
            if credential is None:
                details[location] = {
                    "connected": False,
                    "realmId": None,
                    "companyName": None,
                    "expiresAt": None,
                }
            else:
                details[location] = credential.to_status()

        return {"status": status, "details": details}

    async def test_connection(self, location: str) -> Dict[str, Any]:
        """
        Make a lightweight CompanyInfo call for a location.

        The company name returned by QuickBooks is saved on the credential.

        Raises:
            NotConnectedError, RefreshFailedError, QuickBooksError subclasses
        """
        data = await self.fetcher.fetch_company_info(location)
        company_name = (data.get("CompanyInfo") or {}).get("CompanyName")

        if company_name:
            credential = await self.token_store.get_credential(location)
            if credential is not None and credential.company_name != company_name:
                credential.company_name = company_name
                await self.token_store.store(credential)

        return {
            "success": True,
            "location": location,
            "companyName": company_name,
            "message": "Connection is working",
        }

    async def disconnect(self, location: str) -> bool:
        """Delete the location's credential and its cached results."""
        removed = await self.token_store.disconnect(location)
        self.cache.invalidate_location(location)
        return removed
