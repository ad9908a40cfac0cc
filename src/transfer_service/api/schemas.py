from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from transfer_service.domain.models import Transfer


class TransferRequest(BaseModel):
    payer: UUID
    payee: UUID
    value: int = Field(gt=0, strict=True, description="Amount in the smallest currency unit")


class TransferOut(BaseModel):
    id: str
    payer: str
    payee: str
    value: int
    status: str
    idempotency_key: str | None = None
    created_at: datetime

    @classmethod
    def from_domain(cls, transfer: Transfer) -> "TransferOut":
        return cls(
            id=transfer.id,
            payer=transfer.payer_account_id,
            payee=transfer.payee_account_id,
            value=transfer.amount_cents,
            status=transfer.status.value,
            idempotency_key=transfer.idempotency_key,
            created_at=transfer.created_at,
        )


class TransferResponse(BaseModel):
    message: str
    transaction: TransferOut


class ErrorResponse(BaseModel):
    error: str
