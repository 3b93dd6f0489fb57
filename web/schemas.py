"""
Pydantic request/response models for API endpoints.

Provides type-safe response models with automatic validation and documentation.
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


# ═══════════════════════════════════════════════════════════════════════════════
# HEALTH CHECK
# ═══════════════════════════════════════════════════════════════════════════════

class StoreStats(BaseModel):
    """DuckDB store status."""
    status: str
    latency_ms: Optional[float] = None
    total_queries: Optional[int] = None
    db_path: Optional[str] = None


class CacheStatsResponse(BaseModel):
    """Response cache counters."""
    entries: int
    ttl_seconds: float
    hits: int
    misses: int
    sets: int
    evictions: int
    sweeps: int
    hit_rate_percent: float


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(description="Service status: healthy or degraded")
    version: str = Field(description="Application version")
    uptime_seconds: int = Field(description="Uptime in seconds")
    correlation_id: Optional[str] = Field(None, description="Request correlation ID")
    environment: str = Field(description="QuickBooks environment: sandbox or production")
    store: StoreStats
    cache: Optional[CacheStatsResponse] = None


class MetricsResponse(BaseModel):
    """Application metrics response."""
    requests: Dict[str, int] = Field(description="Request counts by endpoint")
    errors: Dict[str, int] = Field(description="Error counts by type")
    timing: Dict[str, Dict[str, Any]] = Field(description="Timing stats by operation")


# ═══════════════════════════════════════════════════════════════════════════════
# QUICKBOOKS CONNECTIONS
# ═══════════════════════════════════════════════════════════════════════════════

class ConnectionDetail(BaseModel):
    """Stored connection info for one location (no token material)."""
    connected: bool
    realmId: Optional[str] = None
    companyName: Optional[str] = None
    expiresAt: Optional[str] = None


class ConnectionStatusResponse(BaseModel):
    """Connection state for every configured location."""
    status: Dict[str, bool] = Field(description="Location -> connected flag")
    details: Dict[str, ConnectionDetail]


class TestConnectionResponse(BaseModel):
    """Result of a CompanyInfo round trip."""
    success: bool
    location: str
    companyName: Optional[str] = None
    message: str


class DisconnectResponse(BaseModel):
    success: bool
    location: str
    removed: bool = Field(description="False when nothing was stored for the location")
    message: str


# ═══════════════════════════════════════════════════════════════════════════════
# REVENUE
# ═══════════════════════════════════════════════════════════════════════════════

class PeriodFinancialsResponse(BaseModel):
    """QuickBooks figures for one period."""
    period: str = Field(description="Period label (YYYY, YYYY-Q1, YYYY-MM)")
    revenue: float
    cost_of_goods: float
    gross_profit: float
    product_revenue: float = 0.0
    shipping_revenue: float = 0.0


class RevenueTotals(BaseModel):
    revenue: float
    cost_of_goods: float
    gross_profit: float


class DateRange(BaseModel):
    start: str
    end: str


class LocationResultResponse(BaseModel):
    """One location's contribution with its provenance."""
    location: str
    status: str = Field(description="fresh, cached, error or not_connected")
    error: Optional[str] = None
    errorCode: Optional[str] = None
    cacheAgeSeconds: Optional[int] = None
    data: List[PeriodFinancialsResponse] = []


class RevenueResponse(BaseModel):
    """Revenue by period for one location or all locations."""
    success: bool
    location: str
    data: List[PeriodFinancialsResponse]
    totals: RevenueTotals
    granularity: str
    accountingMethod: str
    dateRange: DateRange
    locations: List[LocationResultResponse]
    errors: Dict[str, str] = {}
    cached: bool = False


# ═══════════════════════════════════════════════════════════════════════════════
# COMPANY SUMMARY
# ═══════════════════════════════════════════════════════════════════════════════

class CompanyFinancialsResponse(BaseModel):
    """Full P&L summary for a location or the TOTAL row."""
    location: str
    period: str
    revenue: float
    product_revenue: float
    shipping_revenue: float
    cogs: float
    gross_profit: float
    gross_margin_percent: float
    payroll_total: float
    operating_expenses_total: float
    net_income: float
    net_margin_percent: float
    accounting_method: str
    cached: bool


class CompanySummaryResponse(BaseModel):
    locations: List[CompanyFinancialsResponse]
    totals: CompanyFinancialsResponse
    period: str
    accounting_method: str
    errors: Dict[str, str] = {}
    message: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════════
# COUPONS
# ═══════════════════════════════════════════════════════════════════════════════

class CouponStats(BaseModel):
    totalRedemptions: int
    totalDiscount: float
    uniqueCoupons: int
    avgDiscount: float


class CouponDateRange(BaseModel):
    earliest: Optional[str] = None
    latest: Optional[str] = None


class CouponSourceBreakdown(BaseModel):
    historical: int
    live: int


class CouponPeriod(BaseModel):
    period: str
    redemptions: int
    discountValue: float


class TopCoupon(BaseModel):
    code: str
    count: int
    totalDiscount: float


class CouponRedemptionResponse(BaseModel):
    id: str
    couponCode: str
    discountAmount: float
    redeemedAt: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    source: str


class CouponReportResponse(BaseModel):
    """Merged historical and live coupon redemptions."""
    stats: CouponStats
    dateRange: CouponDateRange
    sourceBreakdown: CouponSourceBreakdown
    originalSourceBreakdown: CouponSourceBreakdown
    periodData: List[CouponPeriod]
    granularity: str
    topCoupons: List[TopCoupon]
    allCouponCodes: List[str]
    redemptions: List[CouponRedemptionResponse]
    liveError: Optional[str] = Field(None, description="Set when live redemptions are missing or partial")
