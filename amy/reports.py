"""
Report fetching on behalf of a location.
"""
from datetime import date
from typing import Any, Dict, Union

from amy.exceptions import NotConnectedError, UnauthorizedError
from amy.models import Credential
from amy.observability import get_logger
from amy.quickbooks import QuickBooksClient
from amy.token_store import TokenStore

logger = get_logger(__name__)

DateLike = Union[date, str]


class ReportFetcher:
    """Resolves a location's credential and calls the QuickBooks accounting API."""

    def __init__(self, token_store: TokenStore, client: QuickBooksClient):
        self.token_store = token_store
        self.client = client

    async def _credential(self, location: str) -> Credential:
        credential = await self.token_store.get_valid_credential(location)
        if not credential.realm_id:
            # Cannot address a company without its realm; needs a fresh authorization
            raise NotConnectedError(location)
        return credential

    async def fetch_profit_and_loss(
        self,
        location: str,
        start_date: DateLike,
        end_date: DateLike,
        accounting_method: str = "Accrual",
    ) -> Dict[str, Any]:
        """
        Raw ProfitAndLoss report for one location and date range.

        A 401 from QuickBooks marks the stored token expired before the
        UnauthorizedError propagates, so the next call refreshes.
        """
        credential = await self._credential(location)
        try:
            return await self.client.get_profit_and_loss(
                credential.access_token,
                credential.realm_id,
                str(start_date),
                str(end_date),
                accounting_method,
                location=location,
            )
        except UnauthorizedError:
            await self.token_store.mark_expired(location)
            raise

    async def fetch_company_info(self, location: str) -> Dict[str, Any]:
        """CompanyInfo entity for the location's realm."""
        credential = await self._credential(location)
        try:
            return await self.client.get_company_info(
                credential.access_token, credential.realm_id, location=location
            )
        except UnauthorizedError:
            await self.token_store.mark_expired(location)
            raise
