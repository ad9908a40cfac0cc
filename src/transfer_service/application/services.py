from dataclasses import dataclass

import structlog
from sqlalchemy.exc import DBAPIError, IntegrityError

from transfer_service.application.unit_of_work import UnitOfWork
from transfer_service.domain.exceptions import (
    AccountNotFoundError,
    AuthorizationUnavailableError,
    BusinessAccountError,
    DomainError,
    IdempotencyKeyConflictError,
    InsufficientFundsError,
    InvalidAmountError,
    SameAccountError,
    TransferFailedError,
    TransferNotAuthorizedError,
)
from transfer_service.domain.models import Account, OutboxEntry, Transfer
from transfer_service.infrastructure.authorization import AuthorizationClient
from transfer_service.infrastructure.metrics import TRANSFER_REQUESTS_TOTAL, track_transfer_duration


logger = structlog.get_logger()


@dataclass
class TransferCommand:
    payer_account_id: str
    payee_account_id: str
    amount_cents: int
    idempotency_key: str | None = None


@dataclass
class TransferResult:
    transfer: Transfer
    replayed: bool = False


class TransferService:
    """
    Moves funds between two accounts.

    The balance check before authorization is only a cheap pre-filter. The
    conditional debit inside the final transaction is what keeps balances
    non-negative under concurrent requests, and nothing is locked or held open
    while the authorization service is being called.
    """

    def __init__(self, uow: UnitOfWork, authorizer: AuthorizationClient) -> None:
        self.uow = uow
        self._authorizer = authorizer

    @track_transfer_duration
    async def execute(self, cmd: TransferCommand) -> TransferResult:
        log = logger.bind(
            idempotency_key=cmd.idempotency_key,
            payer=cmd.payer_account_id,
            payee=cmd.payee_account_id,
            amount_cents=cmd.amount_cents,
        )

        try:
            result = await self._execute(cmd, log)
        except DomainError as e:
            TRANSFER_REQUESTS_TOTAL.labels(outcome=e.code).inc()
            raise

        TRANSFER_REQUESTS_TOTAL.labels(outcome="replayed" if result.replayed else "completed").inc()
        return result

    async def _execute(self, cmd: TransferCommand, log: structlog.stdlib.BoundLogger) -> TransferResult:
        async with self.uow:
            if cmd.idempotency_key:
                existing = await self.uow.transfers.get_by_idempotency_key(cmd.idempotency_key)
                if existing:
                    return self._replay(existing, cmd, log)

            payer, payee = await self._validate(cmd, log)

        await self._authorize(log)

        transfer = Transfer.create(
            payer_id=payer.id,
            payee_id=payee.id,
            amount_cents=cmd.amount_cents,
            idempotency_key=cmd.idempotency_key,
        )
        notification = OutboxEntry.for_transfer(transfer, payee)

        try:
            async with self.uow:
                # Inserted first: a concurrent duplicate blocks on the key's unique
                # index here, before it can touch any balance.
                await self.uow.transfers.add(transfer)
                await self._move_funds(transfer, log)
                await self.uow.outbox.add(notification)
                await self.uow.commit()
        except IntegrityError as e:
            if cmd.idempotency_key is None:
                log.error("transfer_commit_failed", error=str(e), exc_info=True)
                raise TransferFailedError() from e
            return await self._replay_after_conflict(cmd.idempotency_key, cmd, e, log)
        except DBAPIError as e:
            log.error("transfer_commit_failed", error=str(e), exc_info=True)
            raise TransferFailedError() from e

        log.info(
            "transfer_completed",
            step="3/3",
            transfer_id=transfer.id,
            outbox_entry_id=notification.id,
        )
        return TransferResult(transfer=transfer)

    async def _validate(
        self, cmd: TransferCommand, log: structlog.stdlib.BoundLogger
    ) -> tuple[Account, Account]:
        if cmd.payer_account_id == cmd.payee_account_id:
            raise SameAccountError(cmd.payer_account_id)

        if cmd.amount_cents <= 0:
            raise InvalidAmountError(cmd.amount_cents, "must be positive")

        payer = await self.uow.accounts.get(cmd.payer_account_id)
        if not payer:
            raise AccountNotFoundError(cmd.payer_account_id, role="Payer")

        if not payer.can_send:
            log.info("transfer_declined", reason=BusinessAccountError.code)
            raise BusinessAccountError(payer.id)

        payee = await self.uow.accounts.get(cmd.payee_account_id)
        if not payee:
            raise AccountNotFoundError(cmd.payee_account_id, role="Payee")

        if payer.balance_cents < cmd.amount_cents:
            log.info(
                "transfer_declined",
                reason=InsufficientFundsError.code,
                available=payer.balance_cents,
                required=cmd.amount_cents,
            )
            raise InsufficientFundsError(payer.id, cmd.amount_cents, payer.balance_cents)

        log.info("transfer_validated", step="1/3", payer_balance=payer.balance_cents)
        return payer, payee

    async def _authorize(self, log: structlog.stdlib.BoundLogger) -> None:
        try:
            approved = await self._authorizer.authorize()
        except AuthorizationUnavailableError as e:
            log.warning("transfer_declined", reason=e.code, detail=e.reason)
            raise

        if not approved:
            log.info("transfer_declined", reason=TransferNotAuthorizedError.code)
            raise TransferNotAuthorizedError()

        log.info("transfer_authorized", step="2/3")

    async def _move_funds(self, transfer: Transfer, log: structlog.stdlib.BoundLogger) -> None:
        # Rows are updated in id order so opposite-direction transfers cannot deadlock.
        if transfer.payer_account_id < transfer.payee_account_id:
            await self._debit(transfer, log)
            await self.uow.accounts.credit(transfer.payee_account_id, transfer.amount_cents)
        else:
            await self.uow.accounts.credit(transfer.payee_account_id, transfer.amount_cents)
            await self._debit(transfer, log)

    async def _debit(self, transfer: Transfer, log: structlog.stdlib.BoundLogger) -> None:
        debited = await self.uow.accounts.debit_if_sufficient(
            transfer.payer_account_id,
            transfer.amount_cents,
        )
        if not debited:
            # Expected when a concurrent transfer drained the balance after validation.
            log.info("transfer_declined", reason=InsufficientFundsError.code, stage="conditional_debit")
            raise InsufficientFundsError(transfer.payer_account_id, transfer.amount_cents)

    async def _replay_after_conflict(
        self,
        idempotency_key: str,
        cmd: TransferCommand,
        error: IntegrityError,
        log: structlog.stdlib.BoundLogger,
    ) -> TransferResult:
        async with self.uow:
            existing = await self.uow.transfers.get_by_idempotency_key(idempotency_key)

        if existing is None:
            log.error("transfer_commit_failed", error=str(error), exc_info=error)
            raise TransferFailedError() from error

        return self._replay(existing, cmd, log, detected_by="unique_violation")

    def _replay(
        self,
        existing: Transfer,
        cmd: TransferCommand,
        log: structlog.stdlib.BoundLogger,
        detected_by: str = "lookup",
    ) -> TransferResult:
        # A key only replays the request that created it.
        if not existing.same_request(cmd.payer_account_id, cmd.payee_account_id, cmd.amount_cents):
            log.warning("idempotency_key_conflict", transfer_id=existing.id, detected_by=detected_by)
            raise IdempotencyKeyConflictError()

        log.info("idempotent_replay", transfer_id=existing.id, detected_by=detected_by)
        return TransferResult(transfer=existing, replayed=True)
