"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
Every value has a working default so the checker runs without a .env file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # MARKETPLACE
    # ===================
    marketplace_name: str = Field(
        default="shopee",
        min_length=1,
        description="Substring that identifies a marketplace link (case-insensitive)"
    )
    base_locale: str = Field(
        default="vn",
        description="Locale used when the link host has no known country suffix"
    )
    shopee_api_base_url: Optional[str] = Field(
        None,
        description="Override for the item API base URL (e.g. http://localhost:8000/api/shopee)"
    )

    # ===================
    # RATE LIMITING / RETRIES
    # ===================
    rate_limit_min_seconds: float = Field(
        default=2.0,
        ge=0,
        le=60,
        description="Lower bound of the random delay before each API call"
    )
    rate_limit_max_seconds: float = Field(
        default=5.0,
        ge=0,
        le=120,
        description="Upper bound of the random delay before each API call"
    )
    api_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="API attempts per identifier before falling back to the page check"
    )
    api_backoff_base_seconds: float = Field(
        default=3.0,
        ge=0,
        le=60,
        description="Base of the exponential backoff applied between API attempts"
    )
    endpoint_selection: str = Field(
        default="random",
        pattern="^(random|rotate)$",
        description="How the item API endpoint is picked for each attempt"
    )

    # ===================
    # TIMEOUTS
    # ===================
    api_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=120,
        description="Timeout for item API requests"
    )
    page_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Timeout for product page HEAD/GET requests"
    )

    # ===================
    # PAGE FALLBACK
    # ===================
    page_min_body_bytes: int = Field(
        default=10000,
        ge=0,
        description="Page body size treated as weak evidence that the product exists"
    )
    page_max_redirects: int = Field(
        default=3,
        ge=0,
        le=20,
        description="Redirects followed by the page fallback"
    )

    # ===================
    # SPREADSHEET COLUMNS
    # ===================
    link_column_display_name: str = Field(
        default="Link tin bài đăng bán sản phẩm",
        description="Header of the column holding product links"
    )
    link_column_keywords: list[str] = Field(
        default_factory=lambda: ["bán", "sản", "product"],
        description="Keywords accepted next to 'link' when the exact header is missing"
    )
    link_column_fallback_key: str = Field(
        default="__EMPTY_2",
        description="Positional key used when no link header matches"
    )
    status_column_key: str = Field(
        default="__EMPTY_3",
        description="Key of the column the status marker is written to"
    )
    results_filename: str = Field(
        default="shopee_link_results.xlsx",
        description="Download name of the annotated workbook"
    )

    # ===================
    # SESSION / RELAY
    # ===================
    run_ttl_minutes: int = Field(
        default=60,
        ge=1,
        le=1440,
        description="Minutes a finished run stays available for download"
    )
    relay_target_url: str = Field(
        default="https://shopee.vn",
        description="Upstream host the relay forwards /api/shopee requests to"
    )
    relay_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        le=120,
        description="Timeout for relayed requests"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )
    cors_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
        description="Origins allowed to call the API from a browser"
    )

    @model_validator(mode="after")
    def _check_rate_window(self) -> "Settings":
        if self.rate_limit_max_seconds < self.rate_limit_min_seconds:
            raise ValueError("rate_limit_max_seconds must be >= rate_limit_min_seconds")
        return self

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
