"""Domain layer - business entities and rules."""

from transfer_service.domain.exceptions import (
    AccountNotFoundError,
    AuthorizationUnavailableError,
    BusinessAccountError,
    DomainError,
    ForbiddenError,
    IdempotencyKeyConflictError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidRequestError,
    RateLimitedError,
    SameAccountError,
    TransferFailedError,
    TransferNotAuthorizedError,
    UnauthenticatedError,
)
from transfer_service.domain.models import (
    Account,
    AccountKind,
    OutboxEntry,
    OutboxStatus,
    Transfer,
    TransferStatus,
)


__all__ = [
    "Account",
    "AccountKind",
    "AccountNotFoundError",
    "AuthorizationUnavailableError",
    "BusinessAccountError",
    "DomainError",
    "ForbiddenError",
    "IdempotencyKeyConflictError",
    "InsufficientFundsError",
    "InvalidAmountError",
    "InvalidRequestError",
    "OutboxEntry",
    "OutboxStatus",
    "RateLimitedError",
    "SameAccountError",
    "Transfer",
    "TransferFailedError",
    "TransferNotAuthorizedError",
    "TransferStatus",
    "UnauthenticatedError",
]
