"""
Shared Redis connection for tenant AI usage counters.

Only the Redis-backed usage store needs it (USAGE_STORE_BACKEND="redis"),
so worker processes serving the same restaurant add to one counter hash
instead of keeping diverging in-memory totals.

Key layout:
    ai_usage:tenant:{tenant_id}  hash of monthly_requests, monthly_tokens,
                                 total_requests, last_request_at
"""

import logging
from functools import lru_cache

import redis.asyncio as redis
from redis import ConnectionError as RedisConnectionError

from shared.config import get_settings

logger = logging.getLogger(__name__)

MAX_CONNECTIONS = 20
HEALTH_CHECK_INTERVAL_SECONDS = 30


@lru_cache
def get_redis_client() -> "redis.Redis[str]":
    """
    Return the process-wide Redis client, creating it on first use.

    Responses are decoded to str so usage hashes read back as plain
    dicts; timeouts are retried once by the connection pool.
    """
    settings = get_settings()

    try:
        client = redis.from_url(
            settings.REDIS_URL,
            max_connections=MAX_CONNECTIONS,
            decode_responses=True,
            retry_on_timeout=True,
            health_check_interval=HEALTH_CHECK_INTERVAL_SECONDS,
        )
    except RedisConnectionError as e:
        logger.error(
            f"Redis unavailable for usage store | url={settings.REDIS_URL} | error={e}",
            exc_info=True,
        )
        raise

    logger.info(
        f"Usage store Redis client ready | url={settings.REDIS_URL} | "
        f"max_connections={MAX_CONNECTIONS}"
    )
    return client


async def close_redis_client() -> None:
    """Close the cached client on shutdown; errors are logged, not raised."""
    try:
        await get_redis_client().aclose()
        logger.info("Usage store Redis client closed")
    except Exception as e:
        logger.warning(f"Error closing usage store Redis client: {e}")
