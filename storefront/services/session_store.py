# storefront/services/session_store.py
import json
from typing import Any

from redis import asyncio as aioredis

from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, SESSION_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class SessionStore:
    """Per-user session state kept in Redis.

    Holds two things: a snapshot of the cart (read-through cache, the
    ``cart_items`` table stays the source of truth and every cart mutation
    invalidates the snapshot) and the pending QR payment marker issued
    together with a NETS QR code.
    """

    def __init__(self, url: str | None = None, client: aioredis.Redis | None = None, ttl: int = SESSION_TTL_SECONDS):
        self.redis = client or aioredis.Redis.from_url(url or REDIS_URL, decode_responses=True)
        self.ttl = ttl

    @staticmethod
    def _key(user_id: int, name: str) -> str:
        return f"session:{user_id}:{name}"

    async def _get_json(self, key: str) -> Any:
        raw = await self.redis.get(key)
        return json.loads(raw) if raw else None

    # cart mirror

    @redis_retry()
    async def get_cart_snapshot(self, user_id: int) -> dict | None:
        return await self._get_json(self._key(user_id, "cart"))

    @redis_retry()
    async def set_cart_snapshot(self, user_id: int, snapshot: dict) -> None:
        await self.redis.set(self._key(user_id, "cart"), json.dumps(snapshot, default=str), ex=self.ttl)

    @redis_retry()
    async def invalidate_cart(self, user_id: int) -> None:
        await self.redis.delete(self._key(user_id, "cart"))

    # pending NETS payment

    @redis_retry()
    async def set_pending_payment(self, user_id: int, amount: str, txn_retrieval_ref: str, address: str | None) -> None:
        marker = {"amount": amount, "txn_retrieval_ref": txn_retrieval_ref, "address": address or ""}
        logger.info(f"Pending NETS payment {txn_retrieval_ref} stored for user {user_id}")
        await self.redis.set(self._key(user_id, "nets_pending"), json.dumps(marker), ex=self.ttl)

    @redis_retry()
    async def get_pending_payment(self, user_id: int) -> dict | None:
        return await self._get_json(self._key(user_id, "nets_pending"))

    @redis_retry()
    async def clear_pending_payment(self, user_id: int) -> None:
        await self.redis.delete(self._key(user_id, "nets_pending"))
