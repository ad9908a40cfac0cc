from datetime import UTC, datetime
from typing import Any, cast

from sqlalchemy import CursorResult, text
from sqlalchemy.ext.asyncio import AsyncSession

from transfer_service.domain.models import Account, AccountKind


class AccountRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, account_id: str) -> Account | None:
        result = await self._session.execute(
            text("""
                SELECT id, name, email, kind, balance_cents, created_at, updated_at
                FROM accounts
                WHERE id = :id
            """),
            {"id": account_id},
        )
        row = result.fetchone()
        if not row:
            return None
        return Account(
            id=row.id,
            name=row.name,
            email=row.email,
            kind=AccountKind(row.kind),
            balance_cents=row.balance_cents,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    async def add(self, account: Account) -> None:
        await self._session.execute(
            text("""
                INSERT INTO accounts (id, name, email, kind, balance_cents, created_at, updated_at)
                VALUES (:id, :name, :email, :kind, :balance_cents, :created_at, :updated_at)
            """),
            {
                "id": account.id,
                "name": account.name,
                "email": account.email,
                "kind": account.kind.value,
                "balance_cents": account.balance_cents,
                "created_at": account.created_at,
                "updated_at": account.updated_at,
            },
        )

    async def debit_if_sufficient(self, account_id: str, amount_cents: int) -> bool:
        """Decrement the balance only if it covers the amount.

        The predicate is evaluated against the committed row under its row lock,
        so two concurrent debits can never both drive the balance below zero.
        Returns False when no row matched.
        """
        result = cast(
            "CursorResult[Any]",
            await self._session.execute(
                text("""
                    UPDATE accounts
                    SET balance_cents = balance_cents - :amount,
                        updated_at = :updated_at
                    WHERE id = :id AND balance_cents >= :amount
                """),
                {
                    "id": account_id,
                    "amount": amount_cents,
                    "updated_at": datetime.now(UTC),
                },
            ),
        )
        return (result.rowcount or 0) == 1

    async def credit(self, account_id: str, amount_cents: int) -> None:
        await self._session.execute(
            text("""
                UPDATE accounts
                SET balance_cents = balance_cents + :amount,
                    updated_at = :updated_at
                WHERE id = :id
            """),
            {
                "id": account_id,
                "amount": amount_cents,
                "updated_at": datetime.now(UTC),
            },
        )
