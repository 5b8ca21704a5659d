import logging

from fastapi import APIRouter
from redis.exceptions import RedisError

from ..infra.redis_client import get_redis

logger = logging.getLogger("fridgemind.ready")

router = APIRouter()


@router.get("/ready")
async def ready():
    redis_ok = False
    try:
        r = await get_redis()
        await r.ping()
        redis_ok = True
    except (RedisError, OSError) as e:
        logger.warning(f"Redis not reachable: {e}")
    return {"ok": True, "redis_ok": redis_ok}
