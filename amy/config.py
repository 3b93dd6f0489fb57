"""
Centralized configuration for the AMY accounting service.

This module provides a single source of truth for all configuration values.
Configuration is loaded from environment variables with sensible defaults.

Usage:
    from amy.config import config

    client_id = config.quickbooks.client_id
    cache_ttl = config.cache.ttl_seconds
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "")
    return int(value) if value.strip().isdigit() else default


@dataclass(frozen=True)
class QuickBooksConfig:
    """QuickBooks Online OAuth and API configuration."""

    client_id: str = field(default_factory=lambda: os.getenv("QUICKBOOKS_CLIENT_ID", ""))
    client_secret: str = field(default_factory=lambda: os.getenv("QUICKBOOKS_CLIENT_SECRET", ""))
    redirect_uri: str = field(
        default_factory=lambda: os.getenv(
            "QUICKBOOKS_REDIRECT_URI", "http://localhost:8080/api/quickbooks/callback"
        )
    )
    environment: str = field(
        default_factory=lambda: os.getenv("QUICKBOOKS_ENVIRONMENT", "sandbox")
    )

    auth_url: str = "https://appcenter.intuit.com/connect/oauth2"
    token_url: str = "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
    scope: str = "com.intuit.quickbooks.accounting"

    request_timeout: float = 10.0
    refresh_buffer_seconds: int = 300  # 5 minutes
    max_concurrent_requests: int = field(
        default_factory=lambda: _env_int("QUICKBOOKS_MAX_CONCURRENCY", 3)
    )
    retry_attempts: int = 2
    default_accounting_method: str = "Accrual"

    @property
    def api_base(self) -> str:
        """Accounting API base URL for the configured environment."""
        if self.environment == "production":
            return "https://quickbooks.api.intuit.com/v3"
        return "https://sandbox-quickbooks.api.intuit.com/v3"


@dataclass(frozen=True)
class CacheConfig:
    """Response cache configuration."""

    ttl_seconds: int = 3600  # 1 hour
    max_entries: int = 50  # sweep expired entries above this size


@dataclass(frozen=True)
class LocationConfig:
    """Business locations, each backed by its own QuickBooks company."""

    # Internal location name -> QuickBooks company name
    mapping: Dict[str, str] = field(default_factory=lambda: {
        "MedRock FL": "Medrock FLORIDA",
        "MedRock TN": "Medrock TENNESSEE",
        "MedRock TX": "Medrock TEXAS",
    })

    @property
    def names(self) -> List[str]:
        """Location names in display order."""
        return list(self.mapping)

    def company_name(self, location: str) -> str:
        """QuickBooks company name for a location."""
        return self.mapping.get(location, location)

    def is_known(self, location: str) -> bool:
        return location in self.mapping


@dataclass(frozen=True)
class StoreConfig:
    """DuckDB ledger store configuration."""

    db_path: Path = field(
        default_factory=lambda: Path(
            os.getenv("AMY_DB_PATH", str(Path(__file__).resolve().parent.parent / "data" / "amy.duckdb"))
        )
    )
    query_timeout: float = 30.0


@dataclass(frozen=True)
class PaymentsConfig:
    """MedRock Payments API (live coupon redemptions) and the historical export."""

    api_url: str = field(default_factory=lambda: os.getenv("MEDROCK_PAYMENTS_API_URL", ""))
    api_user: str = field(default_factory=lambda: os.getenv("MEDROCK_PAYMENTS_API_USER", ""))
    api_password: str = field(default_factory=lambda: os.getenv("MEDROCK_PAYMENTS_API_PASS", ""))

    historical_coupons_path: Path = field(
        default_factory=lambda: Path(
            os.getenv(
                "AMY_HISTORICAL_COUPONS_PATH",
                str(Path(__file__).resolve().parent.parent / "data" / "historical-coupons.json"),
            )
        )
    )

    request_timeout: float = 10.0
    page_size: int = 100
    max_pages: int = 50  # 5000 redemptions

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.api_user and self.api_password)


@dataclass(frozen=True)
class WebConfig:
    """Web API configuration."""

    host: str = field(default_factory=lambda: os.getenv("WEB_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("WEB_PORT", 8080))

    # Where OAuth callbacks send the browser back to
    frontend_url: str = field(
        default_factory=lambda: os.getenv("FRONTEND_URL", "http://localhost:3000")
    )
    admin_path: str = "/admin/quickbooks"

    # Rate limiting
    rate_limit_per_minute: int = 30

    # Request timeouts (seconds); fan-out endpoints make one P&L call
    # per period per location
    request_timeout: float = 30.0
    fanout_request_timeout: float = 120.0


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""

    version: str = "1.0.0"
    quickbooks: QuickBooksConfig = field(default_factory=QuickBooksConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    locations: LocationConfig = field(default_factory=LocationConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    payments: PaymentsConfig = field(default_factory=PaymentsConfig)
    web: WebConfig = field(default_factory=WebConfig)


# Global config instance
config = AppConfig()

VERSION = config.version


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def validate_config(app_config: AppConfig = None) -> None:
    """
    Validate that all required configuration is present.

    Call this on application startup to fail fast with clear error messages
    instead of cryptic runtime failures.

    Raises:
        ConfigurationError: If required configuration is missing
    """
    app_config = app_config or config
    qb = app_config.quickbooks
    errors = []

    if not qb.client_id:
        errors.append("QUICKBOOKS_CLIENT_ID is required but not set")

    if not qb.client_secret:
        errors.append("QUICKBOOKS_CLIENT_SECRET is required but not set")

    if qb.environment not in ("sandbox", "production"):
        errors.append(
            f"QUICKBOOKS_ENVIRONMENT must be 'sandbox' or 'production' (got {qb.environment!r})"
        )

    if qb.max_concurrent_requests < 1:
        errors.append("QUICKBOOKS_MAX_CONCURRENCY must be at least 1")

    if not app_config.locations.mapping:
        errors.append("At least one location must be configured")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)
