"""
Redis client utilities for basecore.

Clients are created lazily to avoid import-time connections.
"""

import functools

import redis.asyncio as aioredis

from basecore.settings import get_settings


@functools.lru_cache()
def get_redis_url() -> str:
    """Get Redis URL from settings."""
    return get_settings().REDIS_URL


def get_async_redis_client() -> aioredis.Redis:
    """Get an asyncio Redis client (one per caller, bound to its event loop)."""
    return aioredis.from_url(get_redis_url(), decode_responses=True)
