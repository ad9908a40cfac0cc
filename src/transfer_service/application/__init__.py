"""Application layer - services and use cases."""

from transfer_service.application.services import (
    TransferCommand,
    TransferResult,
    TransferService,
)
from transfer_service.application.unit_of_work import UnitOfWork


__all__ = [
    "TransferCommand",
    "TransferResult",
    "TransferService",
    "UnitOfWork",
]
