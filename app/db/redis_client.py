# app/db/redis_client.py
import redis.asyncio as redis

from app.config import REDIS_URL

# Shared pool for the analytics read cache; connects lazily on first command
redis_client = redis.from_url(REDIS_URL, decode_responses=True)


async def get_redis():
    """FastAPI dependency: `redis: Redis = Depends(get_redis)`."""
    yield redis_client


async def close_redis() -> None:
    await redis_client.aclose()
