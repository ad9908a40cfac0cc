from datetime import UTC, datetime
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.exc import SQLAlchemyError

from transfer_service.api.dependencies import enforce_rate_limit, get_container, get_principal
from transfer_service.api.schemas import ErrorResponse, TransferOut, TransferRequest, TransferResponse
from transfer_service.api.security import Principal
from transfer_service.application.services import TransferCommand, TransferService
from transfer_service.application.unit_of_work import UnitOfWork
from transfer_service.container import ServiceContainer
from transfer_service.domain.exceptions import ForbiddenError


logger = structlog.get_logger()

router = APIRouter()

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status: {"model": ErrorResponse} for status in (400, 401, 403, 404, 429, 500, 503)
}


@router.post(
    "/transactions/transfer",
    response_model=TransferResponse,
    responses=ERROR_RESPONSES,
    dependencies=[Depends(enforce_rate_limit)],
)
async def transfer(
    body: TransferRequest,
    principal: Annotated[Principal, Depends(get_principal)],
    container: Annotated[ServiceContainer, Depends(get_container)],
    idempotency_key: Annotated[
        str | None,
        Header(alias="Idempotency-Key", min_length=1, max_length=255),
    ] = None,
) -> TransferResponse:
    payer_id = str(body.payer)
    if principal.account_id != payer_id:
        raise ForbiddenError("Token subject does not match payer")

    cmd = TransferCommand(
        payer_account_id=payer_id,
        payee_account_id=str(body.payee),
        amount_cents=body.value,
        idempotency_key=idempotency_key,
    )

    async with container.database.session() as session:
        service = TransferService(UnitOfWork(session), container.authorizer)
        result = await service.execute(cmd)

    message = "Transfer already processed" if result.replayed else "Transfer completed successfully"
    return TransferResponse(message=message, transaction=TransferOut.from_domain(result.transfer))


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}


@router.get("/readyz", response_model=None)
async def readyz(container: Annotated[ServiceContainer, Depends(get_container)]) -> dict[str, Any] | JSONResponse:
    """Database reachability, plus the state of every outbound circuit seen so far."""
    try:
        await container.database.ping()
    except (SQLAlchemyError, OSError) as e:
        logger.warning("readiness_check_failed", error=str(e))
        return JSONResponse({"status": "not ready", "error": "Database unavailable"}, status_code=503)
    return {
        "status": "ready",
        "timestamp": datetime.now(UTC).isoformat(),
        "circuits": container.breakers.snapshot(),
    }


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics() -> PlainTextResponse:
    """Prometheus metrics endpoint."""
    return PlainTextResponse(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
