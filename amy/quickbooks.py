"""
Async HTTP client for QuickBooks Online.

Covers both the Intuit OAuth 2.0 endpoints (authorize URL, code exchange,
token refresh) and the accounting API calls the dashboard needs
(ProfitAndLoss report, CompanyInfo).

Features:
- Connection pooling with httpx
- Exponential backoff retry on network errors and timeouts
- Status-code mapping to the QuickBooksError hierarchy
- Request correlation IDs for tracing

The client holds no credentials of its own. Callers pass the access token
and realm for every accounting call; TokenStore owns the token lifecycle.
"""
import base64
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from amy.config import QuickBooksConfig, config
from amy.exceptions import (
    QuickBooksAPIError,
    QuickBooksConnectionError,
    RateLimitedError,
    RefreshFailedError,
    UnauthorizedError,
)
from amy.observability import Timer, get_correlation_id, get_logger
from amy.resilience import RetryConfig, retry_with_backoff

logger = get_logger(__name__)

# Minor version pinned for stable report JSON
API_MINOR_VERSION = "65"


class QuickBooksClient:
    """
    Async HTTP client for QuickBooks Online.

    Usage:
        async with QuickBooksClient() as client:
            report = await client.get_profit_and_loss(
                access_token, realm_id, "2024-01-01", "2024-01-31"
            )
    """

    def __init__(
        self,
        client_id: str = None,
        client_secret: str = None,
        qb_config: QuickBooksConfig = None,
        timeout: float = None,
    ):
        """
        Initialize QuickBooks client.

        Args:
            client_id: OAuth client id (defaults to QUICKBOOKS_CLIENT_ID)
            client_secret: OAuth client secret (defaults to QUICKBOOKS_CLIENT_SECRET)
            qb_config: QuickBooks configuration (defaults to the global config)
            timeout: Request timeout in seconds
        """
        self.config = qb_config or config.quickbooks
        self.client_id = client_id or self.config.client_id
        self.client_secret = client_secret or self.config.client_secret
        self.timeout = timeout or self.config.request_timeout
        self.retry_config = RetryConfig(
            max_attempts=max(1, self.config.retry_attempts),
            base_delay=1.0,
            max_delay=10.0,
        )
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def api_base(self) -> str:
        return self.config.api_base

    async def connect(self) -> None:
        """Create HTTP client with connection pooling."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Accept": "application/json"},
                timeout=self.timeout,
                limits=httpx.Limits(
                    max_keepalive_connections=10,
                    max_connections=20,
                )
            )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "QuickBooksClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ═══════════════════════════════════════════════════════════════════════════
    # OAUTH
    # ═══════════════════════════════════════════════════════════════════════════

    def authorization_url(self, state: str) -> str:
        """Intuit consent URL; `state` carries the location being connected."""
        query = urlencode({
            "client_id": self.client_id,
            "scope": self.config.scope,
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
            "state": state,
        })
        return f"{self.config.auth_url}?{query}"

    @property
    def _basic_auth(self) -> str:
        raw = f"{self.client_id}:{self.client_secret}".encode()
        return f"Basic {base64.b64encode(raw).decode()}"

    async def _token_request(self, form: Dict[str, str], location: Optional[str]) -> Dict[str, Any]:
        """POST to the OAuth token endpoint and return the token JSON."""
        data = await self._request(
            "POST",
            self.config.token_url,
            data=form,
            headers={
                "Authorization": self._basic_auth,
                "Content-Type": "application/x-www-form-urlencoded",
            },
            location=location,
            operation="qbo_oauth_token",
        )
        if "access_token" not in data or "refresh_token" not in data:
            raise QuickBooksAPIError(
                "Token response missing access_token or refresh_token",
                location=location,
            )
        return data

    async def exchange_code(self, code: str, location: Optional[str] = None) -> Dict[str, Any]:
        """
        Exchange an authorization code for a token pair.

        Returns:
            Token JSON with access_token, refresh_token, expires_in
        """
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri,
            },
            location,
        )

    async def refresh_tokens(self, refresh_token: str, location: Optional[str] = None) -> Dict[str, Any]:
        """
        Exchange a refresh token for a new token pair.

        Raises:
            RefreshFailedError: Provider rejected the refresh token or was unreachable
        """
        try:
            return await self._token_request(
                {"grant_type": "refresh_token", "refresh_token": refresh_token},
                location,
            )
        except RefreshFailedError:
            raise
        except (QuickBooksAPIError, UnauthorizedError, RateLimitedError, QuickBooksConnectionError) as e:
            raise RefreshFailedError(
                f"Failed to refresh QuickBooks token for {location}",
                details=str(e),
                location=location,
                status_code=getattr(e, "status_code", None),
            ) from e

    # ═══════════════════════════════════════════════════════════════════════════
    # ACCOUNTING API
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_profit_and_loss(
        self,
        access_token: str,
        realm_id: str,
        start_date: str,
        end_date: str,
        accounting_method: str = "Accrual",
        location: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Fetch a ProfitAndLoss report.

        Args:
            access_token: Bearer token for the company
            realm_id: QuickBooks company id
            start_date: Inclusive start (YYYY-MM-DD)
            end_date: Inclusive end (YYYY-MM-DD)
            accounting_method: "Accrual" or "Cash"
            location: Location name for error context

        Returns:
            Raw report JSON
        """
        return await self._request(
            "GET",
            f"{self.api_base}/company/{realm_id}/reports/ProfitAndLoss",
            params={
                "start_date": str(start_date),
                "end_date": str(end_date),
                "accounting_method": accounting_method,
                "minorversion": API_MINOR_VERSION,
            },
            headers={"Authorization": f"Bearer {access_token}"},
            location=location,
            operation="qbo_profit_and_loss",
        )

    async def get_company_info(
        self,
        access_token: str,
        realm_id: str,
        location: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Fetch the CompanyInfo entity for a realm."""
        return await self._request(
            "GET",
            f"{self.api_base}/company/{realm_id}/companyinfo/{realm_id}",
            params={"minorversion": API_MINOR_VERSION},
            headers={"Authorization": f"Bearer {access_token}"},
            location=location,
            operation="qbo_company_info",
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # TRANSPORT
    # ═══════════════════════════════════════════════════════════════════════════

    async def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        location: Optional[str] = None,
        operation: str = "qbo_request",
    ) -> Dict[str, Any]:
        """
        Make HTTP request with retry on connection errors.

        Raises:
            UnauthorizedError: HTTP 401
            RateLimitedError: HTTP 429
            QuickBooksAPIError: Any other error response
            QuickBooksConnectionError: Network/timeout errors after retries
        """
        return await retry_with_backoff(
            self._do_request,
            method, url, params, data, headers, location, operation,
            config=self.retry_config,
            retryable_exceptions=(QuickBooksConnectionError,),
        )

    async def _do_request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]],
        data: Optional[Dict[str, Any]],
        headers: Optional[Dict[str, str]],
        location: Optional[str],
        operation: str,
    ) -> Dict[str, Any]:
        """Execute a single HTTP request (called by retry wrapper)."""
        if not self._client:
            await self.connect()

        request_headers = dict(headers or {})
        correlation_id = get_correlation_id()
        if correlation_id:
            request_headers["X-Request-ID"] = correlation_id

        try:
            with Timer(operation, logger):
                response = await self._client.request(
                    method=method,
                    url=url,
                    params=params,
                    data=data,
                    headers=request_headers,
                )

        except httpx.TimeoutException as e:
            logger.error(
                f"Request timeout: {method} {operation}",
                extra={"location": location, "timeout": self.timeout}
            )
            raise QuickBooksConnectionError(
                f"Request timeout after {self.timeout}s",
                location=location,
                retry_after=5,
            ) from e

        except httpx.RequestError as e:
            logger.error(
                f"Request failed: {method} {operation} - {e}",
                extra={"location": location, "error": str(e)}
            )
            raise QuickBooksConnectionError(str(e), location=location) from e

        self._raise_for_status(response, operation, location)

        if not response.content:
            return {}

        try:
            payload = response.json()
        except ValueError as e:
            logger.error(
                f"Non-JSON body from QuickBooks: {operation}",
                extra={"location": location, "status_code": response.status_code}
            )
            raise QuickBooksAPIError(
                "QuickBooks returned a non-JSON body",
                details=(response.text or "")[:500],
                location=location,
                status_code=response.status_code,
            ) from e

        fault = payload.get("Fault") if isinstance(payload, dict) else None
        if fault:
            raise QuickBooksAPIError(
                "QuickBooks returned a fault",
                details=str(fault)[:500],
                location=location,
                status_code=response.status_code,
            )
        return payload

    @staticmethod
    def _raise_for_status(response, operation: str, location: Optional[str]) -> None:
        status = response.status_code
        if status < 400:
            return

        body = (response.text or "")[:500]
        logger.error(
            f"QuickBooks API error {status}: {body}",
            extra={"operation": operation, "status_code": status, "location": location}
        )

        if status == 401:
            raise UnauthorizedError(location, details=body)

        if status == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitedError(
                location=location,
                details=body,
                retry_after=int(retry_after) if isinstance(retry_after, str) and retry_after.isdigit() else None,
            )

        raise QuickBooksAPIError(
            f"QuickBooks API returned {status}",
            details=body,
            location=location,
            status_code=status,
        )
