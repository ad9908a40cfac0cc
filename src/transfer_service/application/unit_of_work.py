from types import TracebackType
from typing import Self

from sqlalchemy.ext.asyncio import AsyncSession

from transfer_service.infrastructure.repositories import (
    AccountRepository,
    OutboxRepository,
    TransferRepository,
)


class UnitOfWork:
    """
    Repositories sharing one session, one transaction per `async with` block.

    A block that exits without commit() is rolled back, so read-only blocks
    never leave a transaction open behind them.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._committed = False
        self.accounts = AccountRepository(session)
        self.transfers = TransferRepository(session)
        self.outbox = OutboxRepository(session)

    async def __aenter__(self) -> Self:
        self._committed = False
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None or not self._committed:
            await self.rollback()

    async def commit(self) -> None:
        await self._session.commit()
        self._committed = True

    async def rollback(self) -> None:
        await self._session.rollback()
