import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from transfer_service.domain.exceptions import (
    AccountNotFoundError,
    AuthorizationUnavailableError,
    DomainError,
    ForbiddenError,
    InsufficientFundsError,
    InvalidRequestError,
    RateLimitedError,
    TransferFailedError,
    TransferNotAuthorizedError,
    UnauthenticatedError,
)


logger = structlog.get_logger()


HTTP_STATUS_BY_ERROR: dict[type[DomainError], int] = {
    InvalidRequestError: 400,
    InsufficientFundsError: 400,
    UnauthenticatedError: 401,
    ForbiddenError: 403,
    TransferNotAuthorizedError: 403,
    AccountNotFoundError: 404,
    RateLimitedError: 429,
    TransferFailedError: 500,
    AuthorizationUnavailableError: 503,
}


def status_for(error: DomainError) -> int:
    for cls in type(error).__mro__:
        if cls in HTTP_STATUS_BY_ERROR:
            return HTTP_STATUS_BY_ERROR[cls]
    return 500


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        headers: dict[str, str] = {}
        if isinstance(exc, RateLimitedError):
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(
            {"error": str(exc)},
            status_code=status_for(exc),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {
                "field": ".".join(str(part) for part in error["loc"]),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return JSONResponse({"error": "Invalid request", "details": details}, status_code=400)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_error", error=str(exc), path=request.url.path, exc_info=exc)
        return JSONResponse({"error": "Internal server error"}, status_code=500)
