"""Cross-worker lock for the retention sweeper.

With several API workers each running its own sweeper, only the worker
holding this lock sweeps in a given cycle; the others skip. The lock is a
plain Redis key set with NX and a TTL, so a crashed holder frees it when the
TTL lapses. Release only deletes the key if it still holds our token.
"""

from __future__ import annotations

import logging
import uuid

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

# Delete the key only if it still holds our token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisSweepLock:
    def __init__(
        self,
        client: redis.Redis,
        key: str = "crowd_balance:retention_sweep",
        ttl_seconds: int = 300,
    ):
        self.client = client
        self.key = key
        self.ttl_ms = ttl_seconds * 1000
        self._token: str | None = None

    async def acquire(self) -> bool:
        token = uuid.uuid4().hex
        try:
            acquired = await self.client.set(self.key, token, nx=True, px=self.ttl_ms)
        except RedisError:
            logger.exception("Could not reach Redis for sweep lock")
            return False
        if acquired:
            self._token = token
            return True
        return False

    async def release(self) -> None:
        if self._token is None:
            return
        try:
            await self.client.eval(_RELEASE_SCRIPT, 1, self.key, self._token)
        except RedisError:
            # The TTL frees the key eventually
            logger.exception("Could not release sweep lock")
        finally:
            self._token = None
