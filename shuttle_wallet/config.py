"""Application configuration management."""
from decimal import Decimal
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine.url import make_url, URL

SQLITE_LOCAL_URL = "sqlite+aiosqlite:///./shuttle_wallet.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = SQLITE_LOCAL_URL
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Redis (optional, falls back to in-process locks)
    redis_url: str = ""

    # Application
    environment: str = "development"
    currency: str = "THB"

    # Store access
    store_timeout_seconds: float = 10.0  # Bounded wait for any single store call
    balance_lock_timeout_seconds: float = 10.0  # Per-user balance lock acquire timeout
    balance_cas_max_attempts: int = 3  # Attempts when the balance version moved underneath us

    # Transaction history
    transaction_history_limit: int = 50  # Per-user history page
    all_transactions_limit: int = 100  # Admin "all transactions" page

    # User directory
    user_directory_refresh_seconds: float = 0.0  # 0 disables polling for writes made by other processes

    # Weekly settlement
    settlement_base_price: Decimal = Decimal("150")
    settlement_weeks_to_distribute: int = 4
    settlement_players_per_week: int = 1
    settlement_price_floor: Decimal = Decimal("0")
    settlement_timezone: str = "Asia/Bangkok"

    # LINE push notifications
    line_access_token: str = ""
    line_group_id: str = ""
    line_api_url: str = "https://api.line.me/v2/bot/message/push"
    notification_timeout_seconds: float = 15.0

    @model_validator(mode="after")
    def validate_all_config(self):
        """Validate ledger configuration and normalize Postgres URLs."""
        logger = logging.getLogger(__name__)

        if self.store_timeout_seconds <= 0:
            raise ValueError("store_timeout_seconds must be positive")

        if self.balance_lock_timeout_seconds <= 0:
            raise ValueError("balance_lock_timeout_seconds must be positive")

        if self.balance_cas_max_attempts < 1:
            raise ValueError("balance_cas_max_attempts must be at least 1")

        if self.transaction_history_limit < 1 or self.all_transactions_limit < 1:
            raise ValueError("transaction history limits must be at least 1")

        if self.settlement_weeks_to_distribute < 1:
            raise ValueError("settlement_weeks_to_distribute must be at least 1")

        if self.settlement_players_per_week < 1:
            raise ValueError("settlement_players_per_week must be at least 1")

        try:
            ZoneInfo(self.settlement_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown settlement_timezone: {self.settlement_timezone}") from exc

        # Database URL normalization
        url = self.database_url
        if not url:
            logger.warning("Empty DATABASE_URL, using SQLite fallback")
            self.database_url = SQLITE_LOCAL_URL
            return self

        parsed: Optional[URL] = None
        try:
            parsed = make_url(url)
        except Exception as e:  # pragma: no cover - defensive fallback
            logger.error(f"Failed to parse DATABASE_URL: {e}")
            logger.warning("Invalid DATABASE_URL; falling back to default sqlite database.")
            self.database_url = SQLITE_LOCAL_URL
            return self

        drivername = parsed.drivername
        if drivername.startswith("postgres") and "+asyncpg" not in drivername:
            old_drivername = drivername
            parsed = parsed.set(drivername="postgresql+asyncpg")
            logger.info(f"Driver normalized: {old_drivername} -> {parsed.drivername}")
        # Use render_as_string to properly re-encode special characters in password
        self.database_url = parsed.render_as_string(hide_password=False)

        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
