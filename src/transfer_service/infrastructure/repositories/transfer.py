from typing import Any

from sqlalchemy import Row, text
from sqlalchemy.ext.asyncio import AsyncSession

from transfer_service.domain.models import Transfer, TransferStatus


_COLUMNS = """
    id, payer_account_id, payee_account_id, amount_cents,
    status, idempotency_key, created_at
"""


def _to_transfer(row: Row[Any]) -> Transfer:
    return Transfer(
        id=row.id,
        payer_account_id=row.payer_account_id,
        payee_account_id=row.payee_account_id,
        amount_cents=row.amount_cents,
        status=TransferStatus(row.status),
        idempotency_key=row.idempotency_key,
        created_at=row.created_at,
    )


class TransferRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_idempotency_key(self, key: str) -> Transfer | None:
        result = await self._session.execute(
            text(f"SELECT {_COLUMNS} FROM transfers WHERE idempotency_key = :key"),
            {"key": key},
        )
        row = result.fetchone()
        return _to_transfer(row) if row else None

    async def add(self, transfer: Transfer) -> None:
        """Insert a transfer.

        Raises sqlalchemy.exc.IntegrityError when another transfer already holds
        the same idempotency key.
        """
        await self._session.execute(
            text("""
                INSERT INTO transfers
                    (id, payer_account_id, payee_account_id, amount_cents,
                     status, idempotency_key, created_at)
                VALUES
                    (:id, :payer_account_id, :payee_account_id, :amount_cents,
                     :status, :idempotency_key, :created_at)
            """),
            {
                "id": transfer.id,
                "payer_account_id": transfer.payer_account_id,
                "payee_account_id": transfer.payee_account_id,
                "amount_cents": transfer.amount_cents,
                "status": transfer.status.value,
                "idempotency_key": transfer.idempotency_key,
                "created_at": transfer.created_at,
            },
        )
