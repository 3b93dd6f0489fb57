"""
Domain models for QuickBooks reconciliation.

Provides type-safe dataclasses for credentials, period windows, extracted
financials, reconciliation rows and ledger rows. These models are the single
source of truth for data structures shared by the services and the web API.
"""
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class Granularity(str, Enum):
    """Bucketing unit for time-series aggregation."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class AccountingMethod(str, Enum):
    """QuickBooks report accounting basis."""
    ACCRUAL = "Accrual"
    CASH = "Cash"


class DataStatus(str, Enum):
    """Provenance of a location's figures in a response."""
    FRESH = "fresh"
    CACHED = "cached"
    ERROR = "error"
    NOT_CONNECTED = "not_connected"


class SectionKind(str, Enum):
    """Kind of a top-level Profit & Loss report section."""
    INCOME = "income"
    COGS = "cogs"
    GROSS_PROFIT = "gross_profit"
    EXPENSES = "expenses"
    OTHER_INCOME = "other_income"
    OTHER_EXPENSES = "other_expenses"
    NET_INCOME = "net_income"
    OTHER = "other"


# ═══════════════════════════════════════════════════════════════════════════════
# CREDENTIALS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class Credential:
    """OAuth token pair for one location's QuickBooks company."""
    location: str
    access_token: str
    refresh_token: str
    expires_at: datetime  # timezone-aware UTC
    realm_id: str = ""
    company_name: Optional[str] = None

    @classmethod
    def from_token_response(
        cls,
        data: Dict[str, Any],
        location: str,
        now: datetime,
        realm_id: str = "",
    ) -> "Credential":
        """Create Credential from an OAuth token endpoint response."""
        return cls(
            location=location,
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=now + timedelta(seconds=int(data.get("expires_in", 3600))),
            realm_id=data.get("realmId") or realm_id,
        )

    def expires_within(self, buffer: timedelta, now: datetime) -> bool:
        """True when the token expires before `now + buffer`."""
        return self.expires_at < now + buffer

    def to_status(self) -> Dict[str, Any]:
        """Public view without token material."""
        return {
            "connected": True,
            "realmId": self.realm_id or None,
            "companyName": self.company_name,
            "expiresAt": self.expires_at.astimezone(timezone.utc).isoformat(),
        }


# ═══════════════════════════════════════════════════════════════════════════════
# PERIODS AND FINANCIALS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PeriodWindow:
    """One bucket of a date range. Both ends are inclusive."""
    start_date: date
    end_date: date
    label: str


@dataclass
class PeriodFinancials:
    """Revenue figures extracted from one P&L report."""
    period: str
    revenue: float = 0.0
    cost_of_goods: float = 0.0
    gross_profit: float = 0.0
    product_revenue: float = 0.0
    shipping_revenue: float = 0.0

    def add(self, other: "PeriodFinancials") -> None:
        """Accumulate another location's figures for the same period."""
        self.revenue += other.revenue
        self.cost_of_goods += other.cost_of_goods
        self.gross_profit += other.gross_profit
        self.product_revenue += other.product_revenue
        self.shipping_revenue += other.shipping_revenue

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ComparisonRow:
    """Internal ledger revenue vs QuickBooks revenue for one period."""
    period: str
    internal_revenue: float
    quickbooks_revenue: float
    quickbooks_cogs: float
    quickbooks_gross_profit: float
    variance: float
    variance_percentage: float
    quickbooks_product_revenue: float = 0.0
    quickbooks_shipping_revenue: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReportSection:
    """
    Tagged view of a top-level P&L section.

    `summary_total` is None when the section has no readable summary row.
    `lines` holds (account name, amount) pairs of data rows at any depth.
    """
    kind: SectionKind
    label: str = ""
    summary_total: Optional[float] = None
    lines: List[Tuple[str, float]] = field(default_factory=list)


@dataclass
class LocationResult:
    """One location's contribution to a revenue response, with provenance."""
    location: str
    status: DataStatus
    data: List[PeriodFinancials] = field(default_factory=list)
    error: Optional[str] = None
    error_code: Optional[str] = None  # QuickBooksError.error_code of the failure
    cache_age_seconds: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status in (DataStatus.FRESH, DataStatus.CACHED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.location,
            "status": self.status.value,
            "error": self.error,
            "errorCode": self.error_code,
            "cacheAgeSeconds": self.cache_age_seconds,
            "data": [item.to_dict() for item in self.data],
        }


@dataclass
class CompanyFinancials:
    """Full P&L summary for one location (or the all-location total)."""
    location: str
    period: str
    accounting_method: str
    revenue: float = 0.0
    product_revenue: float = 0.0
    shipping_revenue: float = 0.0
    cogs: float = 0.0
    gross_profit: float = 0.0
    gross_margin_percent: float = 0.0
    payroll_total: float = 0.0
    operating_expenses_total: float = 0.0
    net_income: float = 0.0
    net_margin_percent: float = 0.0
    cached: bool = False

    def recalculate_margins(self) -> None:
        """Recompute margin percentages from the absolute figures."""
        if self.revenue > 0:
            self.gross_margin_percent = self.gross_profit / self.revenue * 100
            self.net_margin_percent = self.net_income / self.revenue * 100
        else:
            self.gross_margin_percent = 0.0
            self.net_margin_percent = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ═══════════════════════════════════════════════════════════════════════════════
# INTERNAL LEDGER
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class MarketerMonthlyRow:
    """One (location, marketer, patient state, month) row of the internal ledger."""
    location: str
    marketer_name: str
    patient_state: str
    year: int
    month: int
    transaction_count: int = 0
    acquisition_cost: float = 0.0
    shipping_charged_to_pt: float = 0.0
    shipping_cost_actual: float = 0.0
    total_pt_paid: float = 0.0
    profit_after_product: float = 0.0
    net_profit: float = 0.0

    @classmethod
    def from_db_row(cls, row: tuple) -> "MarketerMonthlyRow":
        """Create from a `marketer_monthly` SELECT in column order."""
        return cls(
            location=row[0],
            marketer_name=row[1],
            patient_state=row[2],
            year=int(row[3]),
            month=int(row[4]),
            transaction_count=int(row[5] or 0),
            acquisition_cost=float(row[6] or 0),
            shipping_charged_to_pt=float(row[7] or 0),
            shipping_cost_actual=float(row[8] or 0),
            total_pt_paid=float(row[9] or 0),
            profit_after_product=float(row[10] or 0),
            net_profit=float(row[11] or 0),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# COUPONS
# ═══════════════════════════════════════════════════════════════════════════════

class CouponSource(str, Enum):
    """Where a coupon redemption was recorded."""
    HISTORICAL = "historical"
    LIVE = "live"


# Historical entries without a computed discount were all $10 coupons
DEFAULT_HISTORICAL_DISCOUNT = 10.0


@dataclass
class CouponRedemption:
    """One coupon use, normalised across the historical export and the Payments API."""
    id: str
    coupon_code: str
    discount_amount: float
    redeemed_at: str  # ISO timestamp as recorded by the source
    source: CouponSource
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_historical(cls, data: Dict[str, Any]) -> Optional["CouponRedemption"]:
        """Create from a historical form export entry; None when it has no date."""
        created = data.get("dateCreated")
        if not created:
            return None
        return cls(
            id=f"hist-{data.get('entryId')}",
            coupon_code=data.get("discountCode") or "",
            discount_amount=float(data.get("calculatedDiscount") or DEFAULT_HISTORICAL_DISCOUNT),
            redeemed_at=str(created).replace('"', ""),
            source=CouponSource.HISTORICAL,
            first_name=data.get("firstName"),
            last_name=data.get("lastName"),
            email=data.get("email"),
        )

    @classmethod
    def from_live(cls, data: Dict[str, Any]) -> "CouponRedemption":
        """Create from a Payments API `redeemed` record."""
        return cls(
            id=f"live-{data.get('_id')}",
            coupon_code=data.get("couponCode") or "",
            discount_amount=float(data.get("discountAmount") or 0),
            redeemed_at=data.get("redeemedAt") or "",
            source=CouponSource.LIVE,
            first_name=data.get("firstName"),
            last_name=data.get("lastName"),
            email=data.get("email"),
        )

    @property
    def redeemed_on(self) -> str:
        """YYYY-MM-DD part of the redemption timestamp."""
        return self.redeemed_at[:10]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "couponCode": self.coupon_code,
            "discountAmount": self.discount_amount,
            "redeemedAt": self.redeemed_at,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "source": self.source.value,
        }
