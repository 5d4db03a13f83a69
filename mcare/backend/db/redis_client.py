import logging
from typing import Optional
from uuid import UUID
import redis.asyncio as redis

from ..models.redis_models import UserSessionRedis

logger = logging.getLogger(__name__)


class RedisClient:
    """
    Redis client for login sessions.
    """

    def __init__(self, pool: redis.ConnectionPool):
        self._redis = redis.Redis(connection_pool=pool, decode_responses=True)

    # ===== User Session Management =====

    async def save_user_session(self, session: UserSessionRedis, ttl: int):
        """Stores the session with a TTL; an expired key means a logged-out user."""
        key = f"sessions:{session.user_id}"
        await self._redis.set(key, session.model_dump_json(), ex=ttl)

    async def get_user_session(self, user_id: UUID) -> Optional[UserSessionRedis]:
        key = f"sessions:{user_id}"
        session_json = await self._redis.get(key)
        return UserSessionRedis.model_validate_json(session_json) if session_json else None

    async def delete_user_session(self, user_id: UUID) -> int:
        key = f"sessions:{user_id}"
        return await self._redis.delete(key)
