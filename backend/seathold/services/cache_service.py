"""
Redis read-through cache for seat listing pages.

CACHING STRATEGY
================

What we cache:
  - Serialized `GET /api/seats` pages
  - Key pattern: "seats:list:g={generation}:page={page}&limit={limit}"

Authority:
  - The ledger (database) is the only authority on seat state. The cache is
    a convenience for viewers polling the seat map, nothing reads it to make
    a hold decision.

Invalidation:
  - Every realtime broadcast (hold, release, sale, admin change, sweep)
    bumps the listing generation before the event goes out, so a client
    that refetches in response to an event never sees the pre-event page.
  - A reader takes the generation *before* querying the ledger and writes
    its page under that generation. A page read before a change but written
    after it lands under a retired generation that nobody reads again.
  - Retired pages are deleted on invalidation; the short TTL covers the rest.

Redis is optional: with REDIS_ENABLED=false, or while Redis is unreachable,
every call degrades to a miss / no-op.
"""

import json
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError
from seathold.core.config import get_settings
from seathold.core.logging import get_logger
from seathold.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

SEAT_LIST_PREFIX = "seats:list:"
SEAT_LIST_GENERATION_KEY = "seats:generation"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled or down."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        try:
            await client.ping()
        except RedisError as e:
            logger.error("redis_connection_failed", error=str(e))
            await client.aclose()
            return None
        _redis_client = client
        logger.info("redis_connected", url=settings.REDIS_URL)

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _make_seat_list_key(generation: int, page: int, limit: int) -> str:
    return f"{SEAT_LIST_PREFIX}g={generation}:page={page}&limit={limit}"


async def get_cache_generation() -> Optional[int]:
    """
    Current listing generation, or None when the cache is unusable.
    Read it before querying the ledger and pass it to get/set.
    """
    client = await get_redis()
    if not client:
        return None

    try:
        value = await client.get(SEAT_LIST_GENERATION_KEY)
    except RedisError as e:
        logger.error("cache_generation_error", error=str(e))
        return None
    return int(value) if value else 0


async def get_cached_seats(generation: Optional[int], page: int, limit: int) -> Optional[dict]:
    if generation is None:
        return None
    client = await get_redis()
    if not client:
        return None

    key = _make_seat_list_key(generation, page, limit)
    try:
        data = await client.get(key)
    except RedisError as e:
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data:
        logger.debug("cache_hit", key=key)
        return json.loads(data)
    logger.debug("cache_miss", key=key)
    return None


async def set_cached_seats(generation: Optional[int], page: int, limit: int, data: dict) -> None:
    if generation is None:
        return
    client = await get_redis()
    if not client:
        return

    key = _make_seat_list_key(generation, page, limit)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        record_cache_operation("set", hit=False)
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except RedisError as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_seat_cache(*_args) -> None:
    """
    Retire every cached listing page.
    Registered as a pre-broadcast hook, hence the ignored event argument.
    """
    client = await get_redis()
    if not client:
        return

    try:
        generation = await client.incr(SEAT_LIST_GENERATION_KEY)
        deleted = 0
        async for key in client.scan_iter(match=f"{SEAT_LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.debug("cache_invalidated", generation=generation, keys_deleted=deleted)
    except RedisError as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except RedisError as e:
        return {"status": "error", "error": str(e)}
