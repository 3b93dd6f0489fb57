"""
Custom exception hierarchy for QuickBooks operations.

Exception Hierarchy:
    QuickBooksError (base)
    ├── NotConnectedError          - No stored credential for the location
    ├── RefreshFailedError         - Provider rejected the refresh token
    ├── UnauthorizedError          - Access token rejected mid-use (401)
    ├── RateLimitedError           - Provider throttled us (429)
    ├── QuickBooksAPIError         - Any other non-2xx response
    └── QuickBooksConnectionError  - Network/timeout issues

    PaymentsError (base)
    ├── PaymentsAPIError           - Payments API returned an error response
    ├── PaymentsConnectionError    - Network/timeout issues
    └── CouponDataError            - Historical coupon export unreadable

    ValidationError                - Input validation failed
    QueryTimeoutError              - Ledger query exceeded timeout
"""


class QuickBooksError(Exception):
    """Base exception for all QuickBooks-related errors."""

    # Short machine-readable status surfaced to the dashboard
    error_code = "error"

    def __init__(self, message: str, details: str = None, location: str = None):
        self.message = message
        self.details = details
        self.location = location
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class NotConnectedError(QuickBooksError):
    """No credential stored for the location; it must be authorized first."""

    error_code = "not_connected"

    def __init__(self, location: str):
        super().__init__(
            f"QuickBooks not connected for {location}. Please authorize first.",
            location=location,
        )


class RefreshFailedError(QuickBooksError):
    """
    Refresh token was rejected by the OAuth provider.

    The location should be treated as disconnected until re-authorized.
    """

    def __init__(self, message: str, details: str = None, location: str = None, status_code: int = None):
        super().__init__(message, details, location)
        self.status_code = status_code


class UnauthorizedError(QuickBooksError):
    """Access token rejected by the API, even if it had not expired yet."""

    def __init__(self, location: str, details: str = None):
        super().__init__(f"QuickBooks rejected the access token for {location}", details, location)
        self.status_code = 401


class RateLimitedError(QuickBooksError):
    """QuickBooks API rate limit hit. Safe to retry later."""

    error_code = "rate_limited"

    def __init__(self, location: str = None, details: str = None, retry_after: int = None):
        super().__init__(
            "QuickBooks API rate limit exceeded. Please try again in a moment.",
            details,
            location,
        )
        self.status_code = 429
        self.retry_after = retry_after


class QuickBooksAPIError(QuickBooksError):
    """
    API returned an error response.

    Check status_code and body for specifics.
    """

    def __init__(self, message: str, details: str = None, location: str = None, status_code: int = None):
        super().__init__(message, details, location)
        self.status_code = status_code

    @property
    def body(self) -> str:
        return self.details or ""


class QuickBooksConnectionError(QuickBooksError):
    """
    Network-related errors (timeout, connection refused, etc.).

    These are typically recoverable with retry.
    """

    def __init__(self, message: str, details: str = None, location: str = None, retry_after: int = None):
        super().__init__(message, details, location)
        self.retry_after = retry_after



class PaymentsError(Exception):
    """Base exception for the MedRock Payments API and coupon data."""

    def __init__(self, message: str, details: str = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class PaymentsAPIError(PaymentsError):
    """Payments API returned an error response."""

    def __init__(self, message: str, details: str = None, status_code: int = None):
        super().__init__(message, details)
        self.status_code = status_code


class PaymentsConnectionError(PaymentsError):
    """Network-related errors talking to the Payments API."""
    pass


class CouponDataError(PaymentsError):
    """The historical coupon export could not be read."""
    pass


class ValidationError(Exception):
    """
    Input validation failed.

    Used for validating user input before processing.
    """

    def __init__(self, field: str, message: str, value: any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.field}: {self.message} (got: {self.value!r})"
        return f"{self.field}: {self.message}"


class QueryTimeoutError(Exception):
    """Ledger query exceeded timeout."""

    def __init__(self, query: str, timeout: float, details: str = None):
        self.query = query[:200] + "..." if len(query) > 200 else query
        self.timeout = timeout
        self.details = details
        message = f"Query timed out after {timeout}s"
        if details:
            message = f"{message}: {details}"
        super().__init__(message)
