"""DuckDBStore marketer ledger methods."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from amy.models import MarketerMonthlyRow

logger = logging.getLogger(__name__)

_LEDGER_COLUMNS = (
    "location, marketer_name, patient_state, year, month, transaction_count, "
    "acquisition_cost, shipping_charged_to_pt, shipping_cost_actual, "
    "total_pt_paid, profit_after_product, net_profit"
)


class MarketersMixin:

    async def upsert_marketer_rows(self, rows: Iterable[MarketerMonthlyRow]) -> int:
        """Insert or replace ledger rows keyed by (location, marketer, state, year, month)."""
        params = [
            [
                row.location, row.marketer_name, row.patient_state, row.year, row.month,
                row.transaction_count, row.acquisition_cost, row.shipping_charged_to_pt,
                row.shipping_cost_actual, row.total_pt_paid, row.profit_after_product,
                row.net_profit,
            ]
            for row in rows
        ]
        if not params:
            return 0

        await self._execute_many(
            f"INSERT OR REPLACE INTO marketer_monthly ({_LEDGER_COLUMNS}) "
            f"VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            params,
        )
        logger.info(f"Upserted {len(params)} marketer ledger rows to DuckDB")
        return len(params)

    async def get_marketer_rows(
        self,
        location: Optional[str] = None,
        year: Optional[int] = None,
        start: Optional[Tuple[int, int]] = None,
        end: Optional[Tuple[int, int]] = None,
        marketer: Optional[str] = None,
    ) -> List[MarketerMonthlyRow]:
        """
        Ledger rows matching the filters, oldest month first.

        Args:
            location: Only this location
            year: Only this calendar year
            start: Inclusive (year, month) lower bound
            end: Inclusive (year, month) upper bound
            marketer: Only this marketer
        """
        conditions = []
        params: list = []

        if location:
            conditions.append("location = ?")
            params.append(location)
        if year is not None:
            conditions.append("year = ?")
            params.append(year)
        if start is not None:
            conditions.append("(year * 100 + month) >= ?")
            params.append(start[0] * 100 + start[1])
        if end is not None:
            conditions.append("(year * 100 + month) <= ?")
            params.append(end[0] * 100 + end[1])
        if marketer:
            conditions.append("marketer_name = ?")
            params.append(marketer)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = await self._fetch_all(f"""
            SELECT {_LEDGER_COLUMNS}
            FROM marketer_monthly
            {where}
            ORDER BY year, month, location, marketer_name, patient_state
        """, params)
        return [MarketerMonthlyRow.from_db_row(row) for row in rows]
