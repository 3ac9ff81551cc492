"""Redis connection pool and key naming for nonces and rate-limit buckets."""

from collections.abc import AsyncGenerator

import redis.asyncio as aioredis

from gigescrow.config import settings

redis_pool = aioredis.ConnectionPool.from_url(settings.redis_url)

KEY_PREFIX = "gigescrow"


def nonce_key(nonce: str) -> str:
    return f"{KEY_PREFIX}:nonce:{nonce}"


def ratelimit_key(subject: str, category: str) -> str:
    """Bucket key; subject is a user id or ``ip:<addr>`` for anonymous callers."""
    return f"{KEY_PREFIX}:ratelimit:{subject}:{category}"


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    client = aioredis.Redis(connection_pool=redis_pool)
    try:
        yield client
    finally:
        await client.aclose()
