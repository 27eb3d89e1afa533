# storefront/core/config.py

import os
from functools import lru_cache
from typing import Optional

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./storefront.db"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # Cache (empty string disables the reservation cache)
    REDIS_URL: str = ""
    REDIS_SOCKET_TIMEOUT_SECONDS: float = 0.5

    # Inventory reservations
    RESERVATION_TTL_MINUTES: int = 15
    EXPIRY_SWEEP_SECONDS: int = 60
    EXPIRY_SWEEP_ENABLED: bool = True
    LOW_STOCK_THRESHOLD: int = 5

    # Payments
    PAYMENT_CURRENCY: str = "NGN"
    PAYMENT_INTENT_TTL_SECONDS: int = 1200
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_CALLBACK_URL: str = ""
    PAYSTACK_WEBHOOK_SECRET: Optional[str] = None
    PAYSTACK_TIMEOUT_SECONDS: float = 30.0
    WEBHOOK_PROCESSING_TIMEOUT_SECONDS: int = 300

    # Logging / environment
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def async_database_url(self) -> str:
        # Convert postgresql:// to postgresql+asyncpg:// for async support
        if self.DATABASE_URL.startswith('postgresql://'):
            return self.DATABASE_URL.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return self.DATABASE_URL

    @property
    def webhook_secret(self) -> str:
        """Paystack signs webhooks with the secret key unless a dedicated secret is set"""
        return self.PAYSTACK_WEBHOOK_SECRET or self.PAYSTACK_SECRET_KEY

    @property
    def reservation_ttl_seconds(self) -> int:
        return self.RESERVATION_TTL_MINUTES * 60


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
