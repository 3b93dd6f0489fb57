"""
Reconciliation of internal ledger revenue against QuickBooks figures.
"""
from typing import Dict, Iterable, List, Mapping, Sequence

from amy.models import ComparisonRow, PeriodFinancials


def variance_percentage(variance: float, external_revenue: float) -> float:
    """variance / external revenue as a percentage, 0 when external revenue is 0."""
    if external_revenue == 0:
        return 0.0
    return variance / external_revenue * 100


def reconcile(
    internal_by_period: Mapping[str, float],
    external_by_period: Mapping[str, PeriodFinancials],
) -> List[ComparisonRow]:
    """
    Compare internal revenue with QuickBooks revenue per period.

    Rows follow the iteration order of `internal_by_period`. A period with no
    QuickBooks figures reconciles against zero, so its variance is the whole
    internal amount. Periods present only in QuickBooks are not reported.
    """
    rows = []
    for period, internal_revenue in internal_by_period.items():
        external = external_by_period.get(period) or PeriodFinancials(period=period)
        variance = internal_revenue - external.revenue

        rows.append(ComparisonRow(
            period=period,
            internal_revenue=internal_revenue,
            quickbooks_revenue=external.revenue,
            quickbooks_cogs=external.cost_of_goods,
            quickbooks_gross_profit=external.gross_profit,
            variance=variance,
            variance_percentage=variance_percentage(variance, external.revenue),
            quickbooks_product_revenue=external.product_revenue,
            quickbooks_shipping_revenue=external.shipping_revenue,
        ))
    return rows


def sum_across_locations(
    per_location: Iterable[Sequence[PeriodFinancials]],
) -> List[PeriodFinancials]:
    """
    Sum per-period figures over several locations.

    Periods keep the order in which they are first seen. Inputs are not
    modified.
    """
    merged: Dict[str, PeriodFinancials] = {}
    for financials in per_location:
        for item in financials:
            total = merged.get(item.period)
            if total is None:
                total = merged[item.period] = PeriodFinancials(period=item.period)
            total.add(item)
    return list(merged.values())


def totals_of(financials: Iterable[PeriodFinancials]) -> Dict[str, float]:
    """Grand totals of a period series in the dashboard's response shape."""
    revenue = cost_of_goods = gross_profit = 0.0
    for item in financials:
        revenue += item.revenue
        cost_of_goods += item.cost_of_goods
        gross_profit += item.gross_profit
    return {
        "revenue": revenue,
        "cost_of_goods": cost_of_goods,
        "gross_profit": gross_profit,
    }
