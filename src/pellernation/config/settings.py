"""Application configuration schema and validation."""

from typing import Literal

from pydantic import Field, PostgresDsn, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    env: Literal["dev", "staging", "prod"] = Field(
        default="dev",
        description="Application environment",
    )
    db_dsn: PostgresDsn = Field(
        ...,
        description="PostgreSQL database connection string",
    )
    db_pool_min: int = Field(
        default=2,
        ge=1,
        description="Minimum database connection pool size",
    )
    db_pool_max: int = Field(
        default=10,
        ge=1,
        description="Maximum database connection pool size",
    )
    paystack_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Paystack secret key (bearer token and webhook HMAC key)",
    )
    paystack_base_url: str = Field(
        default="https://api.paystack.co",
        description="Paystack API base URL",
    )
    paystack_callback_url: str = Field(
        default="",
        description="URL Paystack redirects the payer to after checkout",
    )
    paystack_currency: str = Field(
        default="NGN",
        min_length=3,
        max_length=3,
        description="ISO currency code sent with transaction initialization",
    )
    paystack_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=60,
        description="Total timeout for a single Paystack API call",
    )
    reference_prefix: str = Field(
        default="PellerNation",
        min_length=1,
        description="Namespace tag prepended to generated transaction references",
    )
    checkout_placeholder_email: str = Field(
        default="user@example.com",
        description="Payer email sent to Paystack when initializing a transaction",
    )
    server_host: str = Field(
        default="0.0.0.0",
        description="Interface the HTTP server binds to",
    )
    server_port: int = Field(
        default=5000,
        ge=1,
        le=65535,
        description="Port the HTTP server listens on",
    )
    cors_origin: str = Field(
        default="https://peller-nation.vercel.app",
        description="Origin allowed to call the API from a browser",
    )
    upload_dir: str = Field(
        default="uploads",
        description="Directory where profile images are stored",
    )
    max_upload_mb: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum accepted request body size for uploads (MB)",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("db_pool_max")
    @classmethod
    def validate_pool_max(cls, v: int, info) -> int:
        """Ensure pool_max >= pool_min."""
        if "db_pool_min" in info.data and v < info.data["db_pool_min"]:
            raise ValueError("db_pool_max must be >= db_pool_min")
        return v

    @field_validator("paystack_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get or create the singleton AppConfig instance."""
    global _config
    if _config is None:
        _config = AppConfig()
    return _config
