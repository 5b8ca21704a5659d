from redis.asyncio import Redis as AsyncRedis

from ..settings import settings

_redis_async: AsyncRedis | None = None


async def get_redis() -> AsyncRedis:
    global _redis_async
    if _redis_async is None:
        _redis_async = AsyncRedis.from_url(settings.redis_url, decode_responses=True)
    return _redis_async


def set_redis(client: AsyncRedis | None) -> None:
    """Swap the shared client (tests install a fakeredis instance here)."""
    global _redis_async
    _redis_async = client
