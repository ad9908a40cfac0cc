from dataclasses import dataclass

import httpx
import structlog

from transfer_service.api.security import TokenVerifier
from transfer_service.config import Settings
from transfer_service.infrastructure.authorization import AuthorizationClient
from transfer_service.infrastructure.database import Database
from transfer_service.infrastructure.notifications import NotificationClient
from transfer_service.infrastructure.rate_limiter import FixedWindowRateLimiter
from transfer_service.infrastructure.redis_client import RedisClient
from transfer_service.infrastructure.resilience import (
    CallPolicy,
    CircuitBreakerRegistry,
    ResilientHttpClient,
)


logger = structlog.get_logger()


@dataclass
class ServiceContainer:
    """Process-lifetime state, created once at startup and closed on shutdown."""

    database: Database
    http_client: httpx.AsyncClient
    breakers: CircuitBreakerRegistry
    authorizer: AuthorizationClient
    notifier: NotificationClient
    token_verifier: TokenVerifier
    redis_client: RedisClient | None = None
    rate_limiter: FixedWindowRateLimiter | None = None

    async def close(self) -> None:
        await self.http_client.aclose()
        if self.redis_client:
            await self.redis_client.close()
        await self.database.close()
        logger.info("service_container_closed")


async def build_container(settings: Settings) -> ServiceContainer:
    database = Database(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        statement_timeout_ms=settings.db_statement_timeout_ms,
    )

    # Per-attempt deadlines come from each CallPolicy, not from the client.
    http_client = httpx.AsyncClient(timeout=None)
    breakers = CircuitBreakerRegistry(
        open_after=settings.circuit_open_after,
        cool_down_seconds=settings.circuit_cool_down_seconds,
    )
    http = ResilientHttpClient(http_client, breakers)

    authorizer = AuthorizationClient(
        http,
        settings.auth_url,
        CallPolicy(
            timeout_seconds=settings.auth_timeout_seconds,
            max_retries=settings.auth_max_retries,
            backoff_base_seconds=settings.auth_backoff_base_seconds,
        ),
    )
    notifier = NotificationClient(
        http,
        settings.notify_url,
        CallPolicy(
            timeout_seconds=settings.notify_timeout_seconds,
            max_retries=settings.notify_max_retries,
            backoff_base_seconds=settings.notify_backoff_base_seconds,
        ),
    )

    redis_client: RedisClient | None = None
    rate_limiter: FixedWindowRateLimiter | None = None
    if settings.rate_limit_enabled:
        redis_client = RedisClient(settings.redis_url)
        await redis_client.connect()
        rate_limiter = FixedWindowRateLimiter(
            redis_client=redis_client.client,
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
        logger.info(
            "rate_limiting_enabled",
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )

    return ServiceContainer(
        database=database,
        http_client=http_client,
        breakers=breakers,
        authorizer=authorizer,
        notifier=notifier,
        token_verifier=TokenVerifier(settings.jwt_secret, settings.jwt_algorithm),
        redis_client=redis_client,
        rate_limiter=rate_limiter,
    )
