"""
Async client for the MedRock Payments API.

Only the admin coupon endpoint is used: `GET /coupons/admin/redeemed`
pages through live coupon redemptions with HTTP Basic auth.
"""
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx

from amy.config import PaymentsConfig, config
from amy.exceptions import PaymentsAPIError, PaymentsConnectionError
from amy.observability import Timer, get_correlation_id, get_logger
from amy.resilience import RetryConfig, retry_with_backoff

logger = get_logger(__name__)


class PaymentsClient:
    """
    MedRock Payments API client.

    Usage:
        async with PaymentsClient() as client:
            async for batch in client.paginate_redeemed():
                ...
    """

    def __init__(
        self,
        payments_config: PaymentsConfig = None,
        timeout: float = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.config = payments_config or config.payments
        self.base_url = self.config.api_url.rstrip("/")
        self.timeout = timeout or self.config.request_timeout
        self.retry_config = RetryConfig(max_attempts=2, base_delay=1.0, max_delay=5.0)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return self.config.configured

    async def connect(self) -> None:
        """Create HTTP client with Basic auth."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                auth=(self.config.api_user, self.config.api_password),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
                transport=self._transport,
            )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "PaymentsClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def get_redeemed_coupons(self, page: int = 1, limit: int = None) -> Dict[str, Any]:
        """One page of redemptions: `{"data": [...], "totalPages": n}`."""
        return await retry_with_backoff(
            self._do_request,
            "coupons/admin/redeemed",
            {"page": page, "limit": limit or self.config.page_size},
            config=self.retry_config,
            retryable_exceptions=(PaymentsConnectionError,),
        )

    async def paginate_redeemed(self, max_pages: int = None) -> AsyncGenerator[List[Dict[str, Any]], None]:
        """
        Yield redemption batches page by page.

        Stops at the last page reported by the API or after `max_pages`.
        """
        max_pages = max_pages or self.config.max_pages

        for page in range(1, max_pages + 1):
            response = await self.get_redeemed_coupons(page)
            batch = response.get("data") or []
            if batch:
                yield batch

            total_pages = int(response.get("totalPages") or 0)
            if page >= total_pages:
                break
        else:
            logger.warning(f"Stopped reading coupon redemptions after {max_pages} pages")

    async def _do_request(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self._client:
            await self.connect()

        headers = {}
        correlation_id = get_correlation_id()
        if correlation_id:
            headers["X-Request-ID"] = correlation_id

        try:
            with Timer("payments_redeemed_coupons", logger):
                response = await self._client.get(
                    f"{self.base_url}/{endpoint}", params=params, headers=headers or None
                )
        except httpx.TimeoutException as e:
            logger.error(f"Payments API timeout: {endpoint}", extra={"timeout": self.timeout})
            raise PaymentsConnectionError(f"Request timeout after {self.timeout}s") from e
        except httpx.RequestError as e:
            logger.error(f"Payments API request failed: {endpoint} - {e}")
            raise PaymentsConnectionError(str(e)) from e

        if response.status_code >= 400:
            body = (response.text or "")[:500]
            logger.error(
                f"Payments API error {response.status_code}: {body}",
                extra={"endpoint": endpoint, "status_code": response.status_code}
            )
            raise PaymentsAPIError(
                f"Payments API returned {response.status_code}",
                details=body,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise PaymentsAPIError(
                "Payments API returned a non-JSON body",
                details=(response.text or "")[:500],
                status_code=response.status_code,
            ) from e
        return payload if isinstance(payload, dict) else {}
