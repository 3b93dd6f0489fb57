"""
Tolerant parser for QuickBooks ProfitAndLoss report trees.

The report JSON nests sections under `Rows.Row`. Each section may carry a
`group` tag, a `Header` with the section title, nested `Rows`, and a
`Summary` whose last column holds the section total:

    {"Rows": {"Row": [
        {"group": "Income",
         "Header": {"ColData": [{"value": "Income"}, {"value": ""}]},
         "Rows": {"Row": [{"type": "Data", "ColData": [{"value": "Sales"}, {"value": "1200.00"}]}]},
         "Summary": {"ColData": [{"value": "Total Income"}, {"value": "1200.00"}]}},
        ...
    ]}}

`parse_sections` turns that tree into ReportSection values. Extraction
functions only look at section kinds, so missing or malformed parts of the
tree read as zero instead of raising.
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple

from amy.models import CompanyFinancials, PeriodFinancials, ReportSection, SectionKind

# QuickBooks `group` tag -> section kind
_GROUP_KINDS = {
    "Income": SectionKind.INCOME,
    "COGS": SectionKind.COGS,
    "GrossProfit": SectionKind.GROSS_PROFIT,
    "Expenses": SectionKind.EXPENSES,
    "OtherIncome": SectionKind.OTHER_INCOME,
    "OtherExpenses": SectionKind.OTHER_EXPENSES,
    "NetIncome": SectionKind.NET_INCOME,
}

SHIPPING_KEYWORD = "shipping"
PAYROLL_KEYWORD = "payroll"


def parse_amount(value: Any) -> Optional[float]:
    """
    Parse a report cell into a float.

    Commas are stripped and blank or "-" cells read as 0. Returns None
    when the cell is missing or not numeric.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    cleaned = value.replace(",", "").replace("$", "").strip()
    if cleaned in ("", "-"):
        return 0.0
    try:
        return float(cleaned)
    except ValueError:
        return None


def _rows(container: Any) -> List[Dict[str, Any]]:
    """Child rows of a report or section, skipping anything that is not a dict."""
    if not isinstance(container, dict):
        return []
    rows = container.get("Rows")
    if isinstance(rows, dict):
        rows = rows.get("Row")
    if not isinstance(rows, list):
        return []
    return [row for row in rows if isinstance(row, dict)]


def _col_data(part: Any) -> List[Dict[str, Any]]:
    if not isinstance(part, dict):
        return []
    cols = part.get("ColData")
    if not isinstance(cols, list):
        return []
    return [col if isinstance(col, dict) else {} for col in cols]


def _first_value(cols: List[Dict[str, Any]]) -> str:
    if not cols:
        return ""
    value = cols[0].get("value")
    return value.strip() if isinstance(value, str) else ""


def _last_amount(cols: List[Dict[str, Any]]) -> Optional[float]:
    if len(cols) < 2:
        return None
    return parse_amount(cols[-1].get("value"))


def _section_label(row: Dict[str, Any]) -> str:
    return _first_value(_col_data(row.get("Header"))) or _first_value(_col_data(row.get("Summary")))


def classify_section(row: Dict[str, Any]) -> SectionKind:
    """
    Kind of a section row.

    The `group` tag wins when present. Otherwise the header (or summary)
    title is matched by keyword.
    """
    group = row.get("group")
    if isinstance(group, str) and group in _GROUP_KINDS:
        return _GROUP_KINDS[group]
    if group:
        return SectionKind.OTHER

    label = _section_label(row).lower()
    if not label:
        return SectionKind.OTHER
    if "cost of goods sold" in label or "cost of sales" in label:
        return SectionKind.COGS
    if label.startswith("gross profit"):
        return SectionKind.GROSS_PROFIT
    if label.startswith("net income"):
        return SectionKind.NET_INCOME
    if label.startswith("other income"):
        return SectionKind.OTHER_INCOME
    if label.startswith("other expense"):
        return SectionKind.OTHER_EXPENSES
    if label.startswith("net "):
        return SectionKind.OTHER
    if "income" in label or "revenue" in label:
        return SectionKind.INCOME
    if "expense" in label:
        return SectionKind.EXPENSES
    return SectionKind.OTHER


def _collect_lines(row: Dict[str, Any], prefix: str = "") -> List[Tuple[str, float]]:
    """(name, amount) for every data row below `row`, nested names joined by ':'."""
    lines = []
    for child in _rows(row):
        if child.get("type") == "Section" or "Header" in child or "Rows" in child:
            header = _first_value(_col_data(child.get("Header")))
            child_prefix = f"{prefix}{header}:" if header else prefix
            lines.extend(_collect_lines(child, child_prefix))
            continue

        cols = _col_data(child)
        name = _first_value(cols)
        amount = _last_amount(cols)
        if name and amount is not None:
            lines.append((f"{prefix}{name}", amount))
    return lines


def _parse_section(row: Dict[str, Any], kind: SectionKind) -> ReportSection:
    return ReportSection(
        kind=kind,
        label=_section_label(row),
        summary_total=_last_amount(_col_data(row.get("Summary"))),
        lines=_collect_lines(row),
    )


def parse_sections(tree: Any) -> List[ReportSection]:
    """
    Turn a raw ProfitAndLoss tree into tagged sections.

    Unrecognized wrapper sections are searched for recognized sections
    nested inside them. Never raises on unexpected shapes.
    """
    sections: List[ReportSection] = []

    def walk(container: Any, depth: int) -> None:
        for row in _rows(container):
            if row.get("type") == "Data":
                continue
            kind = classify_section(row)
            if kind is SectionKind.OTHER and depth < 3 and _rows(row):
                walk(row, depth + 1)
                continue
            sections.append(_parse_section(row, kind))

    walk(tree, 0)
    return sections


def _find(sections: Iterable[ReportSection], kind: SectionKind) -> Optional[ReportSection]:
    for section in sections:
        if section.kind is kind:
            return section
    return None


def _total(sections: Iterable[ReportSection], kind: SectionKind) -> float:
    section = _find(sections, kind)
    if section is None or section.summary_total is None:
        return 0.0
    return section.summary_total


def _lines_total(section: Optional[ReportSection], keyword: str) -> float:
    if section is None:
        return 0.0
    return sum(amount for name, amount in section.lines if keyword in name.lower())


def extract_revenue(tree: Any) -> float:
    """Total income from a P&L tree, or 0 when the section is missing."""
    return _total(parse_sections(tree), SectionKind.INCOME)


def extract_cogs(tree: Any) -> float:
    """Total cost of goods sold from a P&L tree, or 0 when the section is missing."""
    return _total(parse_sections(tree), SectionKind.COGS)


def extract_financials(tree: Any, period: str) -> PeriodFinancials:
    """
    Revenue figures for one period's report.

    Income lines whose account name mentions shipping count as shipping
    revenue; the rest of income is product revenue.
    """
    sections = parse_sections(tree)
    revenue = _total(sections, SectionKind.INCOME)
    cogs = _total(sections, SectionKind.COGS)
    shipping = _lines_total(_find(sections, SectionKind.INCOME), SHIPPING_KEYWORD)

    return PeriodFinancials(
        period=period,
        revenue=revenue,
        cost_of_goods=cogs,
        gross_profit=revenue - cogs,
        product_revenue=revenue - shipping,
        shipping_revenue=shipping,
    )


def extract_company_financials(
    tree: Any,
    location: str,
    period: str,
    accounting_method: str,
) -> CompanyFinancials:
    """
    Full P&L summary for one location.

    Net income comes from the report's own Net Income row when present,
    otherwise it is derived from the section totals.
    """
    sections = parse_sections(tree)
    financials = extract_financials(tree, period)

    expenses_section = _find(sections, SectionKind.EXPENSES)
    operating_expenses = _total(sections, SectionKind.EXPENSES)
    payroll = _lines_total(expenses_section, PAYROLL_KEYWORD) + _lines_total(
        _find(sections, SectionKind.COGS), PAYROLL_KEYWORD
    )

    net_income_section = _find(sections, SectionKind.NET_INCOME)
    if net_income_section is not None and net_income_section.summary_total is not None:
        net_income = net_income_section.summary_total
    else:
        net_income = (
            financials.gross_profit
            - operating_expenses
            + _total(sections, SectionKind.OTHER_INCOME)
            - _total(sections, SectionKind.OTHER_EXPENSES)
        )

    result = CompanyFinancials(
        location=location,
        period=period,
        accounting_method=accounting_method,
        revenue=financials.revenue,
        product_revenue=financials.product_revenue,
        shipping_revenue=financials.shipping_revenue,
        cogs=financials.cost_of_goods,
        gross_profit=financials.gross_profit,
        payroll_total=payroll,
        operating_expenses_total=operating_expenses,
        net_income=net_income,
    )
    result.recalculate_margins()
    return result
