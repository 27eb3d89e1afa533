# storefront/services/reservation_cache.py
import json
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from redis import RedisError
from redis.asyncio import Redis

logger = logging.getLogger(__name__)

CACHE_ERRORS = (RedisError, OSError)


def reservation_key(order_id: str, variant_id: str) -> str:
    return f"reservation:{order_id}:{variant_id}"


def payment_key(reference: str) -> str:
    return f"payment:{reference}"


class ReservationCache:
    """
    Best-effort mirror of reservations and payment intents in Redis.

    The database stays the source of truth. Every failure here is logged
    and swallowed; a ``None`` client turns the cache into a no-op.
    """

    def __init__(self, client: Optional[Redis] = None):
        self.client = client

    @classmethod
    def from_url(cls, url: str, socket_timeout: Optional[float] = 0.5) -> "ReservationCache":
        if not url:
            logger.info("REDIS_URL not set, reservation cache disabled")
            return cls(None)
        # A hung server must fail fast instead of stalling the checkout path
        client = Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def close(self) -> None:
        if self.client is None:
            return
        try:
            await self.client.aclose()
        except CACHE_ERRORS as e:
            logger.warning(f"Error closing cache connection: {str(e)}")

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except CACHE_ERRORS as e:
            logger.warning(f"Cache ping failed: {str(e)}")
            return False

    async def _set_json(self, key: str, value: Dict[str, Any], ttl_seconds: int) -> bool:
        if self.client is None:
            return False
        try:
            await self.client.set(key, json.dumps(value, default=str), ex=max(int(ttl_seconds), 1))
            return True
        except CACHE_ERRORS as e:
            logger.warning(f"Cache write failed for {key}: {str(e)}")
            return False

    async def _get_json(self, key: str) -> Optional[Dict[str, Any]]:
        if self.client is None:
            return None
        try:
            raw = await self.client.get(key)
        except CACHE_ERRORS as e:
            logger.warning(f"Cache read failed for {key}: {str(e)}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding unreadable cache entry {key}")
            return None

    async def set_reservation(
        self, order_id: str, variant_id: str, quantity: int, expires_at: datetime, ttl_seconds: int
    ) -> bool:
        value = {"quantity": quantity, "expiresAt": expires_at.isoformat()}
        return await self._set_json(reservation_key(order_id, variant_id), value, ttl_seconds)

    async def get_reservation(self, order_id: str, variant_id: str) -> Optional[Dict[str, Any]]:
        return await self._get_json(reservation_key(order_id, variant_id))

    async def evict(self, order_id: str, variant_ids: Iterable[str]) -> int:
        if self.client is None:
            return 0
        keys = [reservation_key(order_id, variant_id) for variant_id in variant_ids]
        if not keys:
            return 0
        try:
            return await self.client.delete(*keys)
        except CACHE_ERRORS as e:
            logger.warning(f"Cache eviction failed for order {order_id}: {str(e)}")
            return 0

    async def set_payment_intent(self, reference: str, intent: Dict[str, Any], ttl_seconds: int) -> bool:
        return await self._set_json(payment_key(reference), intent, ttl_seconds)

    async def get_payment_intent(self, reference: str) -> Optional[Dict[str, Any]]:
        return await self._get_json(payment_key(reference))
