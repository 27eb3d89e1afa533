# tests/unit/services/test_reservation_cache.py
import json
from datetime import datetime
from unittest.mock import AsyncMock

from redis.exceptions import TimeoutError as RedisTimeoutError

from storefront.services.reservation_cache import ReservationCache, payment_key, reservation_key
from tests.mocks import MockRedis

EXPIRES = datetime(2026, 1, 15, 12, 15, 0)


def test_key_formats():
    assert reservation_key("o1", "v1") == "reservation:o1:v1"
    assert payment_key("REF") == "payment:REF"


async def test_set_and_get_reservation():
    redis = MockRedis()
    cache = ReservationCache(redis)

    assert await cache.set_reservation("o1", "v1", 3, EXPIRES, 900) is True

    assert json.loads(redis.store["reservation:o1:v1"]) == {"quantity": 3, "expiresAt": "2026-01-15T12:15:00"}
    assert redis.ttls["reservation:o1:v1"] == 900
    assert await cache.get_reservation("o1", "v1") == {"quantity": 3, "expiresAt": "2026-01-15T12:15:00"}


async def test_ttl_is_at_least_one_second():
    redis = MockRedis()

    await ReservationCache(redis).set_reservation("o1", "v1", 1, EXPIRES, 0)

    assert redis.ttls["reservation:o1:v1"] == 1


async def test_evict_deletes_every_variant_key():
    redis = MockRedis()
    cache = ReservationCache(redis)
    await cache.set_reservation("o1", "v1", 1, EXPIRES, 60)
    await cache.set_reservation("o1", "v2", 1, EXPIRES, 60)

    removed = await cache.evict("o1", ["v1", "v2"])

    assert removed == 2
    assert redis.store == {}
    assert await cache.evict("o1", []) == 0


async def test_failures_are_swallowed():
    redis = MockRedis()
    redis.should_fail = True
    cache = ReservationCache(redis)

    assert await cache.set_reservation("o1", "v1", 1, EXPIRES, 60) is False
    assert await cache.get_reservation("o1", "v1") is None
    assert await cache.evict("o1", ["v1"]) == 0
    assert await cache.set_payment_intent("REF", {"amount": "10.00"}, 1200) is False
    assert await cache.ping() is False


async def test_timeouts_are_swallowed():
    client = AsyncMock()
    client.get.side_effect = RedisTimeoutError("timed out")

    assert await ReservationCache(client).get_reservation("o1", "v1") is None


async def test_unreadable_entry_is_ignored():
    redis = MockRedis()
    redis.store["reservation:o1:v1"] = "{not json"

    assert await ReservationCache(redis).get_reservation("o1", "v1") is None


async def test_disabled_cache_is_a_noop():
    cache = ReservationCache.from_url("")

    assert cache.enabled is False
    assert await cache.set_reservation("o1", "v1", 1, EXPIRES, 60) is False
    assert await cache.get_reservation("o1", "v1") is None
    assert await cache.evict("o1", ["v1"]) == 0
    await cache.close()


async def test_payment_intent_round_trip():
    cache = ReservationCache(MockRedis())

    await cache.set_payment_intent("REF", {"order_id": "o1", "amount": "10.00"}, 1200)

    assert await cache.get_payment_intent("REF") == {"order_id": "o1", "amount": "10.00"}


def test_from_url_sets_socket_timeouts(mocker):
    from_url = mocker.patch("storefront.services.reservation_cache.Redis.from_url")

    cache = ReservationCache.from_url("redis://localhost:6379/0", socket_timeout=0.25)

    assert cache.enabled
    from_url.assert_called_once_with(
        "redis://localhost:6379/0",
        decode_responses=True,
        socket_timeout=0.25,
        socket_connect_timeout=0.25,
    )
