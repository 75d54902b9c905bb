"""
Configuration management using Pydantic Settings.
Supports multiple environments: development, staging, production.
"""

from typing import Optional, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings with environment-based configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "SDK Batch Processor"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"

    # API
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: List[str] = ["http://localhost:3000"]

    # Database
    database_url: Optional[str] = None
    database_password: Optional[str] = None
    database_pool_size: int = 10
    database_max_overflow: int = 20

    # Ledger
    rpc_url: Optional[str] = None
    contract_address: Optional[str] = None
    verifier_private_key: Optional[str] = None
    network: str = "mainnet"
    rpc_timeout: int = 30  # seconds
    confirmation_timeout: int = 180  # seconds
    native_symbol: str = "XFI"

    # Batch processing
    batch_size: int = Field(default=50, ge=1)
    delay_between_transactions: float = Field(default=2.0, ge=0)  # seconds
    delay_between_batches: float = Field(default=5.0, ge=0)  # seconds
    default_max_retries: int = Field(default=3, ge=0)
    include_failed_in_batch: bool = False
    processing_reclaim_minutes: int = Field(default=30, ge=1)
    min_reward_wei: int = 10 ** 15
    triggered_by: str = "manual"

    # Scheduler
    scheduler_enabled: bool = False
    scheduler_interval: int = 86400  # seconds

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console
    log_file: Optional[str] = None

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def missing_required(self) -> List[str]:
        """Names of the environment variables that must be set but are not."""
        missing = [
            env_name
            for env_name, value in (
                ("DATABASE_URL", self.database_url),
                ("RPC_URL", self.rpc_url),
                ("CONTRACT_ADDRESS", self.contract_address),
                ("VERIFIER_PRIVATE_KEY", self.verifier_private_key),
            )
            if not value
        ]

        if self.database_url and not self._has_database_credential():
            missing.append("DATABASE_PASSWORD")

        return missing

    def ensure_configured(self) -> None:
        """Fail fast when required configuration is absent."""
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                {"missing": missing},
            )

    def _has_database_credential(self) -> bool:
        url = make_url(self.database_url)
        if url.get_backend_name() == "sqlite":
            return True
        return bool(url.password or self.database_password)


# Global settings instance
settings = Settings()


class DatabaseConfig:
    """Database-specific configuration."""

    @staticmethod
    def get_database_url(database_url: Optional[str] = None) -> str:
        """Get database URL with the async driver and service credential applied."""
        url = make_url(database_url or settings.database_url)

        if url.drivername in ("postgresql", "postgres", "postgresql+psycopg2"):
            url = url.set(drivername="postgresql+asyncpg")
        elif url.drivername == "sqlite":
            url = url.set(drivername="sqlite+aiosqlite")

        if url.get_backend_name() != "sqlite" and not url.password and settings.database_password:
            url = url.set(password=settings.database_password)

        return url.render_as_string(hide_password=False)

    @staticmethod
    def get_engine_config(database_url: str) -> dict:
        """Get SQLAlchemy engine configuration."""
        if make_url(database_url).get_backend_name() == "sqlite":
            return {}
        return {
            "pool_size": settings.database_pool_size,
            "max_overflow": settings.database_max_overflow,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
        }


class LedgerConfig:
    """Ledger RPC configuration."""

    @staticmethod
    def get_rpc_config() -> dict:
        """Get ledger RPC client configuration."""
        return {
            "endpoint": settings.rpc_url,
            "contract_address": settings.contract_address,
            "timeout": settings.rpc_timeout,
            "confirmation_timeout": settings.confirmation_timeout,
        }
