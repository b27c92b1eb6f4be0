# storefront/services/lock_service.py
import uuid
from uuid import UUID

import redis

from storefront.data.redis_client import checkout_lock_key
from storefront.utils.retry import redis_retry
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# compare-and-delete in one step so a lock that expired and was taken by
# someone else is never released by the old holder
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    -per-user checkout lock (SET NX EX)
    -release only by the token that took it
    """

    def __init__(self, redis_client: redis.Redis, log=None):
        self.redis = redis_client
        self.log = log or logger

    @redis_retry()
    def acquire_checkout_lock(self, user_id: UUID, ttl: int) -> str | None:
        """Returns the holder token, or None when another checkout holds the lock."""
        key = checkout_lock_key(user_id)
        token = uuid.uuid4().hex
        acquired = self.redis.set(name=key, value=token, nx=True, ex=ttl)
        if not acquired:
            self.log.info(f"Lock {key} already held")
            return None
        self.log.info(f"Acquired lock {key}")
        return token

    @redis_retry()
    def release_checkout_lock(self, user_id: UUID, token: str) -> bool:
        key = checkout_lock_key(user_id)
        released = bool(self.redis.eval(_RELEASE_LUA, 1, key, token))
        self.log.info(f"Release lock {key}: {'released' if released else 'not held'}")
        return released
