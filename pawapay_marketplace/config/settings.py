"""Application settings using Pydantic for environment-based configuration."""
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Dict, List, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PAWAPAY_BASE_URLS = {
    "sandbox": "https://api.sandbox.pawapay.io",
    "production": "https://api.pawapay.io",
}


def parse_transaction_limits(raw: str) -> Dict[str, Tuple[Decimal, Decimal]]:
    """
    Parse ``"ZMW:1.00-50000.00,USD:1.00-5000.00"`` into per-currency limits.

    Raises:
        ValueError: On a malformed entry or a minimum above its maximum
    """
    limits: Dict[str, Tuple[Decimal, Decimal]] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        try:
            currency, bounds = entry.split(":", 1)
            low, high = bounds.split("-", 1)
            minimum, maximum = Decimal(low.strip()), Decimal(high.strip())
        except (ValueError, InvalidOperation):
            raise ValueError(f"Invalid transaction limit entry: {entry!r}") from None
        if minimum > maximum:
            raise ValueError(f"Minimum above maximum for {currency.strip()}")
        limits[currency.strip().upper()] = (minimum, maximum)
    return limits


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # PawaPay Configuration
    pawapay_api_token: str = Field(..., description="PawaPay API bearer token")
    pawapay_environment: str = Field(
        default="sandbox", description="PawaPay environment (sandbox/production)"
    )
    pawapay_base_url: Optional[str] = Field(
        default=None, description="Override the PawaPay API base URL"
    )
    pawapay_webhook_secret: str = Field(..., description="Shared secret for callback signatures")
    pawapay_timeout_seconds: float = Field(default=30.0, description="Outbound request timeout")
    circuit_breaker_failure_threshold: int = Field(
        default=5, description="Consecutive gateway failures before the circuit opens"
    )
    circuit_breaker_reset_seconds: int = Field(
        default=60, description="Seconds before an open circuit allows a trial call"
    )

    # Payments
    default_country: str = Field(default="ZMB", description="Country for phone numbers and operators")
    supported_currencies: str = Field(
        default="ZMW", description="Currencies accepted for deposits (comma-separated)"
    )
    transaction_limits: str = Field(
        default="ZMW:1.00-50000.00,USD:1.00-5000.00",
        description="Per-currency limits, CUR:min-max (comma-separated)",
    )
    operator_cache_ttl_seconds: int = Field(
        default=3600, description="Operator directory cache TTL (seconds)"
    )
    payout_customer_message: str = Field(
        default="Payout from Myzuwa.com", description="Statement text shown to vendors"
    )
    stale_deposit_minutes: int = Field(
        default=30, description="Pending deposits older than this are re-checked by the sync worker"
    )
    status_sync_interval_seconds: int = Field(
        default=300, description="Sleep between status sync runs"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./pawapay.db", description="Async SQLAlchemy database URL"
    )
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Application Configuration
    app_name: str = Field(default="pawapay-marketplace", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:8000",
        description="CORS allowed origins (comma-separated)",
    )
    admin_api_token: Optional[str] = Field(
        default=None, description="Token required in X-Admin-Token for admin routes"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("pawapay_api_token", "pawapay_webhook_secret")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Must not be empty")
        return v

    @field_validator("pawapay_environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate PawaPay environment."""
        v = v.lower()
        if v not in PAWAPAY_BASE_URLS:
            raise ValueError(f"Invalid PawaPay environment. Must be one of: {list(PAWAPAY_BASE_URLS)}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("supported_currencies")
    @classmethod
    def validate_currencies(cls, v: str) -> str:
        codes = [c.strip().upper() for c in v.split(",") if c.strip()]
        if not codes:
            raise ValueError("At least one supported currency is required")
        for code in codes:
            if len(code) != 3 or not code.isalpha():
                raise ValueError(f"Invalid currency code: {code!r}")
        return ",".join(codes)

    @field_validator("transaction_limits")
    @classmethod
    def validate_transaction_limits(cls, v: str) -> str:
        parse_transaction_limits(v)
        return v

    @field_validator("default_country")
    @classmethod
    def validate_country(cls, v: str) -> str:
        return v.upper()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    def get_supported_currencies(self) -> List[str]:
        return self.supported_currencies.split(",")

    def get_transaction_limits(self) -> Dict[str, Tuple[Decimal, Decimal]]:
        return parse_transaction_limits(self.transaction_limits)

    @property
    def base_url(self) -> str:
        """PawaPay API base URL for the configured environment."""
        if self.pawapay_base_url:
            return self.pawapay_base_url.rstrip("/")
        return PAWAPAY_BASE_URLS[self.pawapay_environment]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
