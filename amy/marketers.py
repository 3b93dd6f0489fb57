"""
Marketer profitability report over the internal ledger.

Aggregates `marketer_monthly` rows by period and marketer (optionally by
patient state), builds the dashboard payload, and attaches the QuickBooks
comparison when asked.
"""
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from amy.models import AccountingMethod, Granularity, MarketerMonthlyRow
from amy.observability import get_logger
from amy.periods import period_bounds, period_label
from amy.reconciliation import reconcile

logger = get_logger(__name__)

_MEASURES = (
    "transaction_count",
    "acquisition_cost",
    "shipping_charged_to_pt",
    "shipping_cost_actual",
    "total_pt_paid",
    "profit_after_product",
    "net_profit",
)


@dataclass
class MarketerAggregate:
    """Ledger measures summed for one period and marketer (and state)."""
    period: str
    marketer_name: str
    patient_state: Optional[str] = None
    transaction_count: int = 0
    acquisition_cost: float = 0.0
    shipping_charged_to_pt: float = 0.0
    shipping_cost_actual: float = 0.0
    total_pt_paid: float = 0.0
    profit_after_product: float = 0.0
    net_profit: float = 0.0

    def add(self, row: MarketerMonthlyRow) -> None:
        for measure in _MEASURES:
            setattr(self, measure, getattr(self, measure) + getattr(row, measure))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.patient_state is None:
            del data["patient_state"]
        return data


def aggregate_by_marketer(
    rows: Iterable[MarketerMonthlyRow],
    granularity: Granularity,
    include_states: bool = False,
) -> List[MarketerAggregate]:
    """Sum rows per (period, marketer) or (period, marketer, state), first-seen order."""
    aggregates: Dict[Tuple, MarketerAggregate] = {}
    for row in rows:
        period = period_label(row.year, row.month, granularity)
        state = row.patient_state if include_states else None
        key = (period, row.marketer_name, state)

        aggregate = aggregates.get(key)
        if aggregate is None:
            aggregate = aggregates[key] = MarketerAggregate(
                period=period, marketer_name=row.marketer_name, patient_state=state
            )
        aggregate.add(row)
    return list(aggregates.values())


def period_totals(rows: Iterable[MarketerMonthlyRow], granularity: Granularity) -> List[Dict[str, Any]]:
    """Chart series: transactions, net profit and revenue per period, oldest first."""
    totals: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        period = period_label(row.year, row.month, granularity)
        entry = totals.setdefault(period, {
            "period": period,
            "transaction_count": 0,
            "net_profit": 0.0,
            "total_pt_paid": 0.0,
        })
        entry["transaction_count"] += row.transaction_count
        entry["net_profit"] += row.net_profit
        entry["total_pt_paid"] += row.total_pt_paid
    return sorted(totals.values(), key=lambda entry: entry["period"])


def internal_revenue_by_period(
    rows: Iterable[MarketerMonthlyRow],
    granularity: Granularity,
    newest_first: bool = True,
) -> Dict[str, float]:
    """Patient-paid revenue per period, in dashboard order."""
    revenue: Dict[str, float] = {}
    for row in rows:
        period = period_label(row.year, row.month, granularity)
        revenue[period] = revenue.get(period, 0.0) + row.total_pt_paid
    return dict(sorted(revenue.items(), reverse=newest_first))


def _group_totals(marketers: List[MarketerAggregate]) -> Dict[str, Any]:
    return {
        measure: sum(getattr(aggregate, measure) for aggregate in marketers)
        for measure in _MEASURES
    }


def build_profitability_report(
    rows: List[MarketerMonthlyRow],
    granularity: Granularity,
) -> Dict[str, Any]:
    """
    Dashboard payload for the marketer profitability view.

    periodGroups are newest first with marketers by net profit descending;
    stateBreakdown is keyed "period|marketer"; chartData is oldest first.
    """
    granularity = Granularity(granularity)
    marketers = sorted({row.marketer_name for row in rows})
    locations = sorted({row.location for row in rows})
    years = [row.year for row in rows]

    stats = {
        "totalTransactions": sum(row.transaction_count for row in rows),
        "totalNetProfit": sum(row.net_profit for row in rows),
        "totalRevenue": sum(row.total_pt_paid for row in rows),
        "totalAcquisitionCost": sum(row.acquisition_cost for row in rows),
        "uniqueMarketers": len(marketers),
    }

    by_period: Dict[str, List[MarketerAggregate]] = {}
    for aggregate in aggregate_by_marketer(rows, granularity):
        by_period.setdefault(aggregate.period, []).append(aggregate)

    period_groups = []
    for period in sorted(by_period, reverse=True):
        group = sorted(by_period[period], key=lambda a: a.net_profit, reverse=True)
        period_groups.append({
            "period": period,
            "marketers": [aggregate.to_dict() for aggregate in group],
            "totals": _group_totals(group),
        })

    state_breakdown: Dict[str, List[MarketerAggregate]] = {}
    for aggregate in aggregate_by_marketer(rows, granularity, include_states=True):
        state_breakdown.setdefault(f"{aggregate.period}|{aggregate.marketer_name}", []).append(aggregate)

    return {
        "stats": stats,
        "dateRange": {
            "minYear": min(years) if years else None,
            "maxYear": max(years) if years else None,
        },
        "marketers": marketers,
        "locations": locations,
        "periodGroups": period_groups,
        "stateBreakdown": {
            key: [a.to_dict() for a in sorted(states, key=lambda a: a.net_profit, reverse=True)]
            for key, states in state_breakdown.items()
        },
        "chartData": period_totals(rows, granularity),
        "granularity": granularity.value,
    }


def comparison_range(
    rows: List[MarketerMonthlyRow],
    granularity: Granularity,
    start_date: Optional[date],
    end_date: Optional[date],
) -> Optional[Tuple[date, date]]:
    """
    Date range for the QuickBooks comparison.

    Explicit dates win; otherwise the range spans the full periods present
    in the ledger rows. None when there is nothing to compare.
    """
    if start_date and end_date:
        return start_date, end_date
    if not rows:
        return None

    labels = sorted({period_label(row.year, row.month, granularity) for row in rows})
    first_start, _ = period_bounds(labels[0], granularity)
    _, last_end = period_bounds(labels[-1], granularity)
    return start_date or first_start, end_date or last_end


class ProfitabilityService:
    """Marketer profitability with optional QuickBooks reconciliation."""

    def __init__(self, store, revenue_service):
        self.store = store
        self.revenue_service = revenue_service

    async def get_report(
        self,
        location: Optional[str] = None,
        year: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        marketer: Optional[str] = None,
        granularity: Granularity = Granularity.MONTHLY,
        include_quickbooks: bool = False,
        accounting_method: AccountingMethod = AccountingMethod.ACCRUAL,
    ) -> Dict[str, Any]:
        granularity = Granularity(granularity)
        rows = await self.store.get_marketer_rows(
            location=location,
            year=year,
            start=(start_date.year, start_date.month) if start_date else None,
            end=(end_date.year, end_date.month) if end_date else None,
            marketer=marketer,
        )
        report = build_profitability_report(rows, granularity)

        if include_quickbooks:
            report.update(await self._quickbooks_comparison(
                rows, location, start_date, end_date, granularity, accounting_method
            ))
        return report

    async def _quickbooks_comparison(
        self,
        rows: List[MarketerMonthlyRow],
        location: Optional[str],
        start_date: Optional[date],
        end_date: Optional[date],
        granularity: Granularity,
        accounting_method: AccountingMethod,
    ) -> Dict[str, Any]:
        date_range = comparison_range(rows, granularity, start_date, end_date)
        if date_range is None:
            return {
                "quickbooks": {"connected": False, "data": [], "totals": None, "errors": {}},
                "quickbooksComparison": [],
                "qbCacheInfo": {"cached": False},
            }

        revenue = await self.revenue_service.get_revenue(
            location, date_range[0], date_range[1], granularity, accounting_method
        )
        external = {item.period: item for item in revenue.data}
        comparison = reconcile(internal_revenue_by_period(rows, granularity), external)

        cache_info: Dict[str, Any] = {"cached": revenue.cached}
        if revenue.cached:
            cache_info["ageSeconds"] = revenue.cache_age_seconds

        return {
            "quickbooks": {
                "connected": revenue.connected,
                "data": [item.to_dict() for item in revenue.data],
                "totals": revenue.totals,
                "locations": [result.to_dict() for result in revenue.results],
                "errors": revenue.errors,
            },
            "quickbooksComparison": [row.to_dict() for row in comparison],
            "qbCacheInfo": cache_info,
        }
