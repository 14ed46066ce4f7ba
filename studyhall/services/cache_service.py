"""
Redis caching for public study hall listings.

Listing pages are cached under `halls:list:<query>` with a TTL. Any change to
a hall (create, update, status, seat layout, rating) drops every listing key
by prefix, so a stale page lives at most until the next write.
Redis is optional: when disabled or unreachable every call is a no-op.
"""

import json
from typing import Optional
from urllib.parse import urlencode

import redis.asyncio as redis

from studyhall.core.config import get_settings
from studyhall.core.logging import get_logger
from studyhall.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

HALL_LIST_PREFIX = "halls:list:"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def make_hall_list_key(filters: dict) -> str:
    """Stable key for a listing query; None filters are left out."""
    params = sorted((k, v) for k, v in filters.items() if v is not None)
    return HALL_LIST_PREFIX + urlencode(params)


async def get_cached_halls(filters: dict) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = make_hall_list_key(filters)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=bool(data))
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_halls(filters: dict, data: dict) -> None:
    client = await get_redis()
    if not client:
        return

    key = make_hall_list_key(filters)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_hall_cache() -> None:
    """Drop every cached listing page."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{HALL_LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
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
    except Exception as e:
        return {"status": "error", "error": str(e)}
