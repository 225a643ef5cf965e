"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Stripe Configuration (card payments)
    stripe_secret_key: Optional[str] = Field(
        default=None, description="Stripe secret API key (sk_test_...)"
    )
    stripe_webhook_secret: Optional[str] = Field(
        default=None, description="Stripe webhook signing secret"
    )
    stripe_api_version: str = Field(default="2024-12-18.acacia", description="Stripe API version")

    # Swish Configuration (merchant payment requests)
    swish_merchant_number: Optional[str] = Field(
        default=None, description="Swish merchant alias (payee number)"
    )
    swish_cert_path: Optional[str] = Field(
        default=None, description="Path to the Swish merchant TLS client certificate (PEM)"
    )
    swish_key_path: Optional[str] = Field(
        default=None, description="Path to the private key for the client certificate (PEM)"
    )
    swish_cert_passphrase: Optional[str] = Field(
        default=None, description="Passphrase for the client certificate private key"
    )
    swish_api_url: str = Field(
        default="https://mss.cpc.getswish.net/swish-cpcapi/api/v2/paymentrequests",
        description="Swish payment request endpoint",
    )
    swish_callback_url: str = Field(
        default="http://localhost:3000/api/webhooks/swish",
        description="Callback URL registered with Swish",
    )

    # Telegram Configuration
    telegram_bot_token: Optional[str] = Field(
        default=None, description="Telegram bot token used for receipts and push"
    )
    telegram_api_url: str = Field(
        default="https://api.telegram.org", description="Telegram Bot API base URL"
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/bistro.db", description="Database connection URL"
    )
    database_pool_size: int = Field(default=20, description="Database connection pool size")
    database_max_overflow: int = Field(default=50, description="Max database connection overflow")
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Application Configuration
    app_name: str = Field(default="kiosk-orders", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=3000, description="API port")
    api_workers: int = Field(default=1, description="Number of API workers")
    frontend_url: str = Field(
        default="http://localhost:5173", description="Web app URL used for payment redirects"
    )
    allowed_origins: str = Field(
        default="http://localhost:5173",
        description="CORS allowed origins (comma-separated)"
    )

    # Ordering
    currency: str = Field(default="SEK", description="Currency for all prices")
    ready_delay_seconds: float = Field(
        default=30.0, description="Kitchen preparation delay before an order becomes ready"
    )
    history_default_limit: int = Field(default=10, description="Default order history size")
    history_max_limit: int = Field(default=50, description="Maximum order history size")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("stripe_secret_key")
    @classmethod
    def validate_stripe_key(cls, v: Optional[str]) -> Optional[str]:
        """Validate Stripe secret key format when one is configured."""
        if not v:
            return None
        if not v.startswith("sk_test_") and not v.startswith("sk_live_"):
            raise ValueError(
                "Invalid Stripe secret key format. Must start with 'sk_test_' or 'sk_live_'"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("ready_delay_seconds")
    @classmethod
    def validate_ready_delay(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("ready_delay_seconds must be positive")
        return v

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def card_configured(self) -> bool:
        return bool(self.stripe_secret_key)

    @property
    def swish_configured(self) -> bool:
        return bool(self.swish_cert_path and self.swish_merchant_number)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
