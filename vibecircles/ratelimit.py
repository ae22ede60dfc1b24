"""
Fixed-window per-user rate limiting backed by Redis.

Without REDIS_URL, or while Redis is unreachable, every request is allowed.
"""
import logging

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException
from redis.exceptions import RedisError

from . import config
from .auth import get_current_user
from .models.users import User

logger = logging.getLogger(__name__)

REDIS = None


async def redis_startup(url: str | None = None):
    global REDIS
    url = url or config.REDIS_URL
    if not url:
        logger.info({'msg': 'rate_limit_disabled', 'reason': 'REDIS_URL not set'})
        return
    client = aioredis.from_url(url, socket_connect_timeout=5, socket_timeout=5, health_check_interval=30)
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning({'msg': 'redis_unavailable', 'error': str(e)})
        await client.aclose()
        return
    REDIS = client
    logger.info({'msg': 'redis_connected'})


async def redis_shutdown():
    global REDIS
    if REDIS is not None:
        await REDIS.aclose()
        REDIS = None


async def check_rate_limit(user_id: int, action: str, limit: int = 100, window: int = 3600) -> bool:
    """True while `user_id` has made at most `limit` `action` calls in the current window."""
    if REDIS is None:
        return True
    key = f'rate:{action}:{user_id}'
    try:
        current = await REDIS.incr(key)
        if current == 1:
            await REDIS.expire(key, window)
    except (RedisError, OSError) as e:
        logger.warning({'msg': 'rate_limit_check_failed', 'action': action, 'error': str(e)})
        return True
    return int(current) <= limit


def rate_limit(action: str, limit: int, window: int = 3600):
    """Route dependency: 429 once the caller exceeds `limit` calls per `window` seconds."""
    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if not await check_rate_limit(current_user.id, action, limit, window):
            raise HTTPException(429, 'Too many requests, please try again later')
        return current_user
    return dependency
