"""
Coupon redemption report.

Historical redemptions come from a one-off JSON export of the old order
forms; live ones are paged from the MedRock Payments API. Both are
normalised to CouponRedemption, merged, filtered and summarised for the
coupon dashboard.
"""
import math
import re
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import orjson

from amy.config import config
from amy.exceptions import CouponDataError, PaymentsError
from amy.models import CouponRedemption, CouponSource
from amy.observability import get_logger
from amy.payments import PaymentsClient
from amy.periods import period_label

logger = get_logger(__name__)

DAILY = "daily"
COUPON_GRANULARITIES = (DAILY, "monthly", "quarterly", "yearly")

TOP_COUPONS_LIMIT = 20
RECENT_REDEMPTIONS_LIMIT = 100
# Codes seen fewer times than this are mostly typos and test entries
MIN_CODE_USES = 2

_DATE_PREFIX = re.compile(r"^(\d{4})-(\d{2})")


def _round_cents(value: float) -> float:
    """Round half up to cents."""
    return math.floor(value * 100 + 0.5) / 100


def load_historical(path: Path) -> List[CouponRedemption]:
    """
    Read the historical export. A missing file means no history.

    Raises:
        CouponDataError: If the file is not a JSON list
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Historical coupon export not found: {path}")
        return []

    try:
        entries = orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as e:
        raise CouponDataError("Historical coupon export is not valid JSON", details=str(e)) from e

    if not isinstance(entries, list):
        raise CouponDataError("Historical coupon export must be a JSON list", details=str(path))

    redemptions = [CouponRedemption.from_historical(entry) for entry in entries if isinstance(entry, dict)]
    return [item for item in redemptions if item is not None]


def filter_redemptions(
    redemptions: Iterable[CouponRedemption],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    source: Optional[CouponSource] = None,
    coupon_code: Optional[str] = None,
) -> List[CouponRedemption]:
    """
    Keep redemptions within [start_date, end_date] (YYYY-MM-DD, inclusive),
    from `source` and matching `coupon_code` case-insensitively.
    """
    code = coupon_code.upper() if coupon_code else None
    kept = []
    for item in redemptions:
        if start_date and item.redeemed_on < start_date:
            continue
        if end_date and item.redeemed_on > end_date:
            continue
        if source and item.source is not source:
            continue
        if code and item.coupon_code.upper() != code:
            continue
        kept.append(item)
    return kept


def coupon_period_key(redeemed_at: str, granularity: str) -> Optional[str]:
    """Period label of a redemption timestamp; None when it has no date."""
    match = _DATE_PREFIX.match(redeemed_at or "")
    if not match:
        return None
    if granularity == DAILY:
        return redeemed_at[:10]
    return period_label(int(match.group(1)), int(match.group(2)), granularity)


def aggregate_by_period(redemptions: Iterable[CouponRedemption], granularity: str) -> List[Dict[str, Any]]:
    """Redemption count and discount value per period, in period order."""
    counts: Counter = Counter()
    discounts: Dict[str, float] = {}

    for item in redemptions:
        key = coupon_period_key(item.redeemed_at, granularity)
        if key is None:
            continue
        counts[key] += 1
        discounts[key] = discounts.get(key, 0.0) + item.discount_amount

    return [
        {"period": key, "redemptions": counts[key], "discountValue": _round_cents(discounts[key])}
        for key in sorted(counts)
    ]


def top_coupons(redemptions: Iterable[CouponRedemption], limit: int = TOP_COUPONS_LIMIT) -> List[Dict[str, Any]]:
    """Most used codes (case-folded), ties in first-seen order."""
    counts: Counter = Counter()
    discounts: Dict[str, float] = {}

    for item in redemptions:
        code = item.coupon_code.upper()
        counts[code] += 1
        discounts[code] = discounts.get(code, 0.0) + item.discount_amount

    ranked = sorted(counts.items(), key=lambda pair: -pair[1])[:limit]
    return [
        {"code": code, "count": count, "totalDiscount": _round_cents(discounts[code])}
        for code, count in ranked
    ]


def frequent_coupon_codes(redemptions: Iterable[CouponRedemption], min_uses: int = MIN_CODE_USES) -> List[str]:
    """Sorted codes used at least `min_uses` times, for the code filter dropdown."""
    counts = Counter(item.coupon_code.upper().strip() for item in redemptions)
    return sorted(code for code, count in counts.items() if count >= min_uses)


def _source_breakdown(redemptions: Iterable[CouponRedemption]) -> Dict[str, int]:
    counts = Counter(item.source for item in redemptions)
    return {source.value: counts[source] for source in CouponSource}


def build_coupon_report(
    historical: List[CouponRedemption],
    live: List[CouponRedemption],
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    source: Optional[CouponSource] = None,
    coupon_code: Optional[str] = None,
    granularity: str = "monthly",
    export: bool = False,
) -> Dict[str, Any]:
    """
    Stats, per-period series, top codes and redemptions for the dashboard.

    Stats and series cover the filtered redemptions. `originalSourceBreakdown`
    and `allCouponCodes` cover everything loaded. Without `export` only the
    most recent redemptions are returned, newest first.
    """
    everything = historical + live
    filtered = filter_redemptions(everything, start_date, end_date, source, coupon_code)

    total = len(filtered)
    total_discount = sum(item.discount_amount for item in filtered)
    ordered = sorted(filtered, key=lambda item: item.redeemed_at or "")

    if export:
        listed = ordered
    else:
        listed = list(reversed(ordered[-RECENT_REDEMPTIONS_LIMIT:]))

    return {
        "stats": {
            "totalRedemptions": total,
            "totalDiscount": _round_cents(total_discount),
            "uniqueCoupons": len({item.coupon_code.upper() for item in filtered}),
            "avgDiscount": _round_cents(total_discount / total) if total else 0,
        },
        "dateRange": {
            "earliest": ordered[0].redeemed_at if ordered else None,
            "latest": ordered[-1].redeemed_at if ordered else None,
        },
        "sourceBreakdown": _source_breakdown(filtered),
        "originalSourceBreakdown": {
            CouponSource.HISTORICAL.value: len(historical),
            CouponSource.LIVE.value: len(live),
        },
        "periodData": aggregate_by_period(filtered, granularity),
        "granularity": granularity,
        "topCoupons": top_coupons(filtered),
        "allCouponCodes": frequent_coupon_codes(everything),
        "redemptions": [item.to_dict() for item in listed],
    }


class CouponService:
    """
    Loads and merges coupon redemptions for the report endpoint.

    The historical export is read once and kept; live redemptions are
    fetched on every request.
    """

    def __init__(self, client: PaymentsClient, historical_path: Path = None):
        self.client = client
        self.historical_path = Path(historical_path or config.payments.historical_coupons_path)
        self._historical: Optional[List[CouponRedemption]] = None

    def historical(self) -> List[CouponRedemption]:
        if self._historical is None:
            self._historical = load_historical(self.historical_path)
            logger.info(f"Loaded {len(self._historical)} historical coupon redemptions")
        return self._historical

    async def load_live(self) -> Tuple[List[CouponRedemption], Optional[str]]:
        """
        Live redemptions and, when the API failed part way, the error.

        Pages read before a failure are kept.
        """
        if not self.client.configured:
            logger.warning("MedRock Payments API credentials not configured")
            return [], "MedRock Payments API not configured"

        redemptions: List[CouponRedemption] = []
        try:
            async for batch in self.client.paginate_redeemed():
                redemptions.extend(CouponRedemption.from_live(entry) for entry in batch)
        except PaymentsError as e:
            logger.error(
                f"Live coupon fetch stopped after {len(redemptions)} redemptions: {e}",
                extra={"loaded": len(redemptions)}
            )
            return redemptions, e.message

        return redemptions, None

    async def get_report(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        source: Optional[CouponSource] = None,
        coupon_code: Optional[str] = None,
        granularity: str = "monthly",
        export: bool = False,
    ) -> Dict[str, Any]:
        """
        Coupon report over historical and live redemptions.

        Raises:
            CouponDataError: If the historical export is unreadable
        """
        historical = self.historical()
        live, live_error = await self.load_live()

        report = build_coupon_report(
            historical,
            live,
            start_date=start_date,
            end_date=end_date,
            source=source,
            coupon_code=coupon_code,
            granularity=granularity,
            export=export,
        )
        report["liveError"] = live_error
        return report
