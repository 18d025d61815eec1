# storefront/services/lock_service.py
import uuid

from redis import asyncio as aioredis

from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, CHECKOUT_LOCK_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

#compare-and-delete in one atomic Lua step, nobody can slip in between GET and DEL
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    -single-flight checkout guard per user (SET NX EX)
    -release only by the holder of the token
    """

    def __init__(self, url: str | None = None, client: aioredis.Redis | None = None):
        self.redis = client or aioredis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def checkout_key(user_id: int) -> str:
        return f"checkout:{user_id}:lock"

    @redis_retry()
    async def acquire_checkout_lock(self, user_id: int, ttl: int = CHECKOUT_LOCK_TTL_SECONDS) -> str | None:
        """Returns the lock token, or None when another checkout holds it."""
        key = self.checkout_key(user_id)
        token = uuid.uuid4().hex
        logger.info(f"Acquire lock {key}")
        #SET checkout:1:lock "<token>" NX EX 30
        acquired = await self.redis.set(name=key, value=token, nx=True, ex=ttl)
        return token if acquired else None

    @redis_retry()
    async def release_checkout_lock(self, user_id: int, token: str) -> bool:
        key = self.checkout_key(user_id)
        logger.info(f"Release lock {key}")
        res = await self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)
