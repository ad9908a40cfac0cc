import redis.asyncio as redis
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from transfer_service.api.security import Principal
from transfer_service.container import ServiceContainer
from transfer_service.domain.exceptions import RateLimitedError, UnauthenticatedError
from transfer_service.infrastructure.metrics import RATE_LIMIT_EXCEEDED_TOTAL


logger = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    container: ServiceContainer = request.app.state.container
    return container


async def get_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    container: ServiceContainer = Depends(get_container),
) -> Principal:
    if credentials is None:
        raise UnauthenticatedError("Missing or invalid authorization header")
    return container.token_verifier.verify(credentials.credentials)


def client_identifier(request: Request) -> str:
    if forwarded := request.headers.get("x-forwarded-for"):
        return forwarded.split(",")[0].strip()
    if real_ip := request.headers.get("x-real-ip"):
        return real_ip
    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(
    request: Request,
    container: ServiceContainer = Depends(get_container),
) -> None:
    limiter = container.rate_limiter
    if limiter is None:
        return

    path = request.url.path
    try:
        is_allowed, _remaining = await limiter.is_allowed(f"{client_identifier(request)}:{path}")
    except redis.RedisError as e:
        # Fail open while Redis is unreachable.
        logger.warning("rate_limiter_unavailable", error=str(e))
        return

    if not is_allowed:
        RATE_LIMIT_EXCEEDED_TOTAL.labels(path=path).inc()
        raise RateLimitedError(limiter.window_seconds)
