import redis.asyncio as redis
import structlog

from transfer_service.config import settings


logger = structlog.get_logger()


class RedisClient:
    """Owns the Redis connection pool used by the rate limiter."""

    def __init__(self, url: str | None = None, socket_timeout: float = 0.5) -> None:
        self._url = url or settings.redis_url
        self._socket_timeout = socket_timeout
        self._client: redis.Redis[bytes] | None = None

    @property
    def display_url(self) -> str:
        """URL without credentials, for logs."""
        return self._url.split("@")[-1]

    @property
    def client(self) -> "redis.Redis[bytes]":
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def connect(self) -> None:
        self._client = redis.from_url(
            self._url,
            decode_responses=False,
            socket_timeout=self._socket_timeout,
            socket_connect_timeout=self._socket_timeout,
        )
        await self._client.ping()
        logger.info("redis_connected", url=self.display_url)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("redis_disconnected", url=self.display_url)
