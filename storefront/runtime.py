# storefront/runtime.py
"""
Process-wide handles.

Everything with a connection or a background task lives on one Runtime,
built by the entry point (the FastAPI lifespan, a script, or a test) and
closed by the same owner. Nothing here runs at import time.
"""

import logging
from typing import Optional

from storefront.core.config import Settings
from storefront.core.utils import Clock, utc_now
from storefront.database import Database
from storefront.integrations.base import PaymentGateway
from storefront.integrations.paystack import PaystackClient
from storefront.scheduler import ExpiryScheduler
from storefront.services.audit_logger import AuditLogger
from storefront.services.reservation_cache import ReservationCache
from storefront.services.reservation_manager import ReservationManager
from storefront.services.settlement import SettlementCoordinator
from storefront.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


class Runtime:
    def __init__(
        self,
        settings: Settings,
        database: Optional[Database] = None,
        cache: Optional[ReservationCache] = None,
        gateway: Optional[PaymentGateway] = None,
        clock: Clock = utc_now,
    ):
        self.settings = settings
        self.clock = clock

        self.db = database or Database(
            settings.async_database_url,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
        )
        self.cache = cache if cache is not None else ReservationCache.from_url(
            settings.REDIS_URL, socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS
        )
        self.gateway = gateway or PaystackClient(
            secret_key=settings.PAYSTACK_SECRET_KEY,
            webhook_secret=settings.webhook_secret,
            base_url=settings.PAYSTACK_BASE_URL,
            callback_url=settings.PAYSTACK_CALLBACK_URL,
            timeout=settings.PAYSTACK_TIMEOUT_SECONDS,
        )

        self.audit = AuditLogger(self.db, clock=clock)
        self.ledger = StockLedger(
            self.db, audit=self.audit, low_stock_threshold=settings.LOW_STOCK_THRESHOLD, clock=clock
        )
        self.reservations = ReservationManager(
            self.db, cache=self.cache, ttl_minutes=settings.RESERVATION_TTL_MINUTES, clock=clock
        )
        self.settlement = SettlementCoordinator(
            self.db,
            self.gateway,
            self.reservations,
            cache=self.cache,
            audit=self.audit,
            currency=settings.PAYMENT_CURRENCY,
            intent_ttl_seconds=settings.PAYMENT_INTENT_TTL_SECONDS,
            processing_timeout_seconds=settings.WEBHOOK_PROCESSING_TIMEOUT_SECONDS,
            clock=clock,
        )
        self.scheduler = ExpiryScheduler(
            self.reservations,
            self.settlement,
            interval_seconds=settings.EXPIRY_SWEEP_SECONDS,
        )

    async def open(self, start_scheduler: Optional[bool] = None) -> None:
        await self.db.open()
        if start_scheduler is None:
            start_scheduler = self.settings.EXPIRY_SWEEP_ENABLED
        if start_scheduler:
            self.scheduler.start()
        logger.info(f"Runtime opened ({self.settings.ENVIRONMENT})")

    async def close(self) -> None:
        self.scheduler.stop()
        await self.cache.close()
        await self.db.close()
        logger.info("Runtime closed")
