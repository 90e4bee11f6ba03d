# app/services/infrastructure/redis_client.py
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RedisClientError(Exception):
    """Raised when a Redis command fails; callers decide whether to retry."""

    def __init__(self, message: str, command: str | None = None):
        super().__init__(message)
        self.command = command


class RedisClient:
    """Pooled async Redis client used by the Redis-backed repositories."""

    def __init__(self, url: str | None = None):
        self.url = url or settings.REDIS_URL
        self.pool = None
        self.client = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        if not self.url:
            raise RuntimeError("REDIS_URL is not configured")

        try:
            logger.info("Attempting Redis connection", url_preview=self.url[:30] + "...")

            self.pool = ConnectionPool.from_url(
                self.url,
                max_connections=20,
                retry_on_timeout=True,
                socket_connect_timeout=10,
                socket_timeout=10,
                health_check_interval=30,
                decode_responses=True,  # Auto-decode strings
            )

            self.client = redis.Redis(connection_pool=self.pool)

            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info("Redis client initialized successfully", max_connections=20)

        except Exception as e:
            logger.error("Failed to initialize Redis client", error=str(e))
            self._initialized = False
            raise RuntimeError("Redis initialization failed") from e

    async def close(self):
        """Clean shutdown"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            self._initialized = False
            logger.info("Redis client closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))

    async def _ensure_initialized(self):
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            await self._ensure_initialized()
            result = await self.client.ping()
            return bool(result)
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def get(self, key: str) -> str | None:
        try:
            await self._ensure_initialized()
            result = await self.client.get(key)
            return result if result else None
        except Exception as e:
            logger.error("Redis GET failed", key=key[:60], error=str(e))
            raise RedisClientError(f"GET failed: {e}", command="GET") from e

    async def set(self, key: str, value: str) -> bool:
        try:
            await self._ensure_initialized()
            result = await self.client.set(key, value)
            return bool(result)
        except Exception as e:
            logger.error("Redis SET failed", key=key[:60], error=str(e))
            raise RedisClientError(f"SET failed: {e}", command="SET") from e

    async def hset(self, key: str, field: str, value: str) -> bool:
        try:
            await self._ensure_initialized()
            await self.client.hset(key, field, value)
            return True
        except Exception as e:
            logger.error("Redis HSET failed", key=key[:60], field=field[:60], error=str(e))
            raise RedisClientError(f"HSET failed: {e}", command="HSET") from e

    async def hget(self, key: str, field: str) -> str | None:
        try:
            await self._ensure_initialized()
            return await self.client.hget(key, field)
        except Exception as e:
            logger.error("Redis HGET failed", key=key[:60], field=field[:60], error=str(e))
            raise RedisClientError(f"HGET failed: {e}", command="HGET") from e

    async def hexists(self, key: str, field: str) -> bool:
        try:
            await self._ensure_initialized()
            return bool(await self.client.hexists(key, field))
        except Exception as e:
            logger.error("Redis HEXISTS failed", key=key[:60], field=field[:60], error=str(e))
            raise RedisClientError(f"HEXISTS failed: {e}", command="HEXISTS") from e

    async def hvals(self, key: str) -> list[str]:
        try:
            await self._ensure_initialized()
            result = await self.client.hvals(key)
            return [str(item) for item in result] if result else []
        except Exception as e:
            logger.error("Redis HVALS failed", key=key[:60], error=str(e))
            raise RedisClientError(f"HVALS failed: {e}", command="HVALS") from e
