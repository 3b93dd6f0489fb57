"""
Pytest configuration and shared fixtures.
"""
import pytest
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List
from unittest.mock import AsyncMock, MagicMock

from amy.models import Credential, MarketerMonthlyRow


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _disable_rate_limits():
    """Route limits would otherwise leak between tests sharing one client address."""
    from web.routes.api._deps import limiter

    limiter.enabled = False
    yield
    limiter.enabled = True


class FakeClock:
    """Settable clock returning aware UTC datetimes."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMonotonic:
    """Settable float clock for ResponseCache."""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


def make_pnl(
    income_lines: List = None,
    cogs_total: Any = None,
    expense_lines: List = None,
    net_income: Any = None,
) -> Dict[str, Any]:
    """Build a ProfitAndLoss report tree in the QuickBooks JSON shape."""
    rows = []

    if income_lines is not None:
        total = sum(amount for _, amount in income_lines)
        rows.append({
            "type": "Section",
            "group": "Income",
            "Header": {"ColData": [{"value": "Income"}, {"value": ""}]},
            "Rows": {"Row": [
                {"type": "Data", "ColData": [{"value": name}, {"value": f"{amount:.2f}"}]}
                for name, amount in income_lines
            ]},
            "Summary": {"ColData": [{"value": "Total Income"}, {"value": f"{total:.2f}"}]},
        })

    if cogs_total is not None:
        rows.append({
            "type": "Section",
            "group": "COGS",
            "Header": {"ColData": [{"value": "Cost of Goods Sold"}, {"value": ""}]},
            "Rows": {"Row": [
                {"type": "Data", "ColData": [{"value": "Product Cost"}, {"value": str(cogs_total)}]}
            ]},
            "Summary": {"ColData": [{"value": "Total Cost of Goods Sold"}, {"value": str(cogs_total)}]},
        })

    if expense_lines is not None:
        total = sum(amount for _, amount in expense_lines)
        rows.append({
            "type": "Section",
            "group": "Expenses",
            "Header": {"ColData": [{"value": "Expenses"}, {"value": ""}]},
            "Rows": {"Row": [
                {"type": "Data", "ColData": [{"value": name}, {"value": f"{amount:.2f}"}]}
                for name, amount in expense_lines
            ]},
            "Summary": {"ColData": [{"value": "Total Expenses"}, {"value": f"{total:.2f}"}]},
        })

    if net_income is not None:
        rows.append({
            "type": "Section",
            "group": "NetIncome",
            "Summary": {"ColData": [{"value": "Net Income"}, {"value": str(net_income)}]},
        })

    return {
        "Header": {"ReportName": "ProfitAndLoss"},
        "Columns": {"Column": [{"ColTitle": ""}, {"ColTitle": "Total"}]},
        "Rows": {"Row": rows},
    }


@pytest.fixture
def sample_pnl() -> Dict[str, Any]:
    """P&L with product and shipping income, COGS, payroll and net income."""
    return make_pnl(
        income_lines=[("Sales", 1000.0), ("Shipping Income", 200.0)],
        cogs_total="400.00",
        expense_lines=[("Payroll Expenses", 300.0), ("Rent", 100.0)],
        net_income="400.00",
    )


def make_credential(
    location: str = "MedRock FL",
    expires_at: datetime = None,
    realm_id: str = "realm-1",
    access_token: str = "access-old",
    refresh_token: str = "refresh-old",
) -> Credential:
    return Credential(
        location=location,
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=expires_at or NOW + timedelta(hours=1),
        realm_id=realm_id,
    )


@pytest.fixture
def credential() -> Credential:
    return make_credential()


@pytest.fixture
def mock_store() -> MagicMock:
    """In-memory stand-in for the credential methods of DuckDBStore."""
    credentials: Dict[str, Credential] = {}
    store = MagicMock()

    async def get_credential(location):
        return credentials.get(location)

    async def list_credentials():
        return [credentials[name] for name in sorted(credentials)]

    async def upsert_credential(credential):
        credentials[credential.location] = credential

    async def update_credential_expiry(location, expires_at):
        if location in credentials:
            credentials[location].expires_at = expires_at

    async def delete_credential(location):
        return credentials.pop(location, None) is not None

    store.credentials = credentials
    store.get_credential = AsyncMock(side_effect=get_credential)
    store.list_credentials = AsyncMock(side_effect=list_credentials)
    store.upsert_credential = AsyncMock(side_effect=upsert_credential)
    store.update_credential_expiry = AsyncMock(side_effect=update_credential_expiry)
    store.delete_credential = AsyncMock(side_effect=delete_credential)
    return store


@pytest.fixture
def ledger_rows() -> List[MarketerMonthlyRow]:
    """Ledger rows for two marketers over Jan-Apr 2024."""
    def row(location, marketer, state, month, count, paid, net):
        return MarketerMonthlyRow(
            location=location,
            marketer_name=marketer,
            patient_state=state,
            year=2024,
            month=month,
            transaction_count=count,
            acquisition_cost=10.0 * count,
            total_pt_paid=paid,
            net_profit=net,
        )

    return [
        row("MedRock FL", "Alice", "FL", 1, 3, 300.0, 120.0),
        row("MedRock FL", "Alice", "GA", 1, 1, 100.0, 40.0),
        row("MedRock FL", "Bob", "FL", 1, 2, 250.0, 150.0),
        row("MedRock FL", "Alice", "FL", 2, 4, 400.0, 160.0),
        row("MedRock TN", "Bob", "TN", 2, 1, 90.0, 20.0),
        row("MedRock FL", "Bob", "FL", 4, 5, 500.0, 210.0),
    ]


@pytest.fixture
def pnl_factory():
    return make_pnl


@pytest.fixture
def credential_factory():
    return make_credential
