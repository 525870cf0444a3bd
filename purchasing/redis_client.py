import redis.asyncio as redis
from purchasing.config import settings

_redis: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    global _redis
    if _redis is None:
        _redis = redis.from_url(settings.redis_url, decode_responses=True)
    return _redis


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


async def claim_window(key: str, ttl_seconds: int) -> bool:
    """
    Returns True if the caller opened a new window for key (nobody else holds it).
    Returns False while an earlier claim is still live.
    Uses SET NX EX: set if not exists, expire after ttl_seconds.
    """
    r = await get_redis()
    was_set = await r.set(key, "1", nx=True, ex=ttl_seconds)
    return bool(was_set)
