"""Repository implementations."""

from transfer_service.infrastructure.repositories.account import AccountRepository
from transfer_service.infrastructure.repositories.outbox import OutboxRepository
from transfer_service.infrastructure.repositories.transfer import TransferRepository


__all__ = [
    "AccountRepository",
    "OutboxRepository",
    "TransferRepository",
]
