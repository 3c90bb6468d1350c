"""
Shared Redis connection for realtime circle channels.

Only pub/sub goes through Redis; nothing the safety engine depends on is
stored there, so an outage degrades live maps and nothing else.
"""

import logging

import redis.asyncio as redis
from saferoute.app.core.config import settings

logger = logging.getLogger("saferoute.redis")

redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def ping_redis() -> bool:
    """
    Health probe.

    Returns:
        True if Redis answered the ping, False otherwise
    """
    try:
        return await redis_client.ping()
    except Exception as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False


async def close_redis() -> None:
    try:
        await redis_client.aclose()
    except Exception as exc:
        logger.warning("Error closing Redis connection: %s", exc)
