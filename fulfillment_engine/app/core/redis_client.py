"""
Redis connection for courier webhook de-duplication.

Redis only holds short-lived webhook claims, so an unreachable server
degrades de-duplication but never blocks order or tracking writes.
"""

import logging

import redis.asyncio as redis
from fulfillment_engine.app.core.config import Settings, settings

logger = logging.getLogger(__name__)


def build_redis(source: Settings) -> redis.Redis:
    """Client for the configured URL; connections open lazily on first command."""
    return redis.from_url(
        source.redis_url,
        decode_responses=source.redis_decode_responses,
        socket_connect_timeout=source.operation_timeout_seconds,
        socket_timeout=source.operation_timeout_seconds,
    )


redis_client = build_redis(settings)


async def get_redis() -> redis.Redis:
    """FastAPI dependency; tests override it with an in-memory fake."""
    return redis_client


async def ping_redis() -> bool:
    """Health probe: True when the webhook claim store answers."""
    try:
        return bool(await redis_client.ping())
    except Exception as exc:
        logger.warning("Redis unreachable: %s", exc)
        return False
