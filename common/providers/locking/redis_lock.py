import uuid
from typing import Optional
import redis.asyncio as redis

from common.core.config import settings
from common.core.exceptions import LockUnavailableError
from .interface import DistributedLockInterface
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)

# Delete the key only if it still holds our token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# Reset the TTL only if the key still holds our token
_EXTEND_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class RedisLock(DistributedLockInterface):
    """Redis-based distributed lock (SET NX EX + compare-and-delete)."""

    def __init__(self):
        self.host = settings.redis_host
        self.port = settings.redis_port
        self.password = settings.redis_password
        self.db = settings.redis_db
        self._client: Optional[redis.Redis] = None
        self._lock_prefix = "lock:"
        self._connected = False

    async def connect(self) -> bool:
        """Connect to Redis."""
        try:
            self._client = redis.Redis(
                host=self.host,
                port=self.port,
                password=self.password,
                db=self.db,
                decode_responses=True,
            )
            await self._client.ping()
            self._connected = True
            logger.info("Redis lock provider connected")
            return True
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._connected = False
            return False

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            self._connected = False
            logger.info("Redis lock provider disconnected")

    async def _ensure_connected(self) -> None:
        if not self._connected:
            await self.connect()

    async def acquire_lock(
        self, resource_key: str, timeout_seconds: int = 30
    ) -> Optional[str]:
        await self._ensure_connected()

        lock_key = f"{self._lock_prefix}{resource_key}"
        lock_token = str(uuid.uuid4())

        try:
            acquired = await self._client.set(
                lock_key,
                lock_token,
                nx=True,
                ex=timeout_seconds,
            )
        except Exception as e:
            logger.error(f"Error acquiring lock for {resource_key}: {e}")
            raise LockUnavailableError(
                f"Lock provider unavailable for {resource_key}: {e}"
            ) from e

        if acquired:
            logger.info(f"Acquired lock for {resource_key}")
            return lock_token
        logger.debug(f"Failed to acquire lock for {resource_key} - already locked")
        return None

    async def release_lock(self, resource_key: str, lock_token: str) -> bool:
        await self._ensure_connected()

        lock_key = f"{self._lock_prefix}{resource_key}"

        try:
            result = await self._client.eval(_RELEASE_SCRIPT, 1, lock_key, lock_token)
        except Exception as e:
            logger.error(f"Error releasing lock for {resource_key}: {e}")
            return False

        if result:
            logger.info(f"Released lock for {resource_key}")
            return True
        logger.warning(
            f"Cannot release lock for {resource_key} - token mismatch or lock expired"
        )
        return False

    async def extend_lock(
        self, resource_key: str, lock_token: str, timeout_seconds: int = 30
    ) -> bool:
        await self._ensure_connected()

        lock_key = f"{self._lock_prefix}{resource_key}"

        try:
            result = await self._client.eval(
                _EXTEND_SCRIPT, 1, lock_key, lock_token, timeout_seconds
            )
        except Exception as e:
            logger.error(f"Error extending lock for {resource_key}: {e}")
            return False

        if not result:
            logger.warning(f"Lock for {resource_key} is no longer held by this token")
        return bool(result)

    async def is_locked(self, resource_key: str) -> bool:
        await self._ensure_connected()

        try:
            return bool(await self._client.exists(f"{self._lock_prefix}{resource_key}"))
        except Exception as e:
            logger.error(f"Error checking lock for {resource_key}: {e}")
            return False
