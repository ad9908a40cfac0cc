from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ulid import ULID


class AccountKind(Enum):
    PERSONAL = "personal"
    BUSINESS = "business"


class TransferStatus(Enum):
    COMPLETED = "completed"


class OutboxStatus(Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SENT = "sent"
    FAILED = "failed"


@dataclass
class Account:
    id: str
    name: str
    email: str
    kind: AccountKind = AccountKind.PERSONAL
    balance_cents: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if self.balance_cents < 0:
            raise ValueError("Balance cannot be negative")

    @property
    def can_send(self) -> bool:
        return self.kind is AccountKind.PERSONAL


@dataclass
class Transfer:
    id: str
    payer_account_id: str
    payee_account_id: str
    amount_cents: int
    status: TransferStatus = TransferStatus.COMPLETED
    idempotency_key: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(
        cls,
        payer_id: str,
        payee_id: str,
        amount_cents: int,
        idempotency_key: str | None = None,
    ) -> "Transfer":
        if amount_cents <= 0:
            raise ValueError("Amount must be positive")
        return cls(
            id=str(ULID()),
            payer_account_id=payer_id,
            payee_account_id=payee_id,
            amount_cents=amount_cents,
            idempotency_key=idempotency_key,
        )

    def same_request(self, payer_id: str, payee_id: str, amount_cents: int) -> bool:
        """True when the transfer was made for exactly these accounts and amount."""
        return (
            self.payer_account_id == payer_id
            and self.payee_account_id == payee_id
            and self.amount_cents == amount_cents
        )


@dataclass
class OutboxEntry:
    id: str
    recipient: str
    message: str
    status: OutboxStatus = OutboxStatus.PENDING
    attempts: int = 0
    last_error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    claimed_at: datetime | None = None

    @classmethod
    def create(cls, recipient: str, message: str) -> "OutboxEntry":
        return cls(id=str(ULID()), recipient=recipient, message=message)

    @classmethod
    def for_transfer(cls, transfer: Transfer, payee: Account) -> "OutboxEntry":
        return cls.create(
            recipient=payee.email,
            message=f"You received a transfer of {transfer.amount_cents}",
        )

    def status_after_failure(self, max_attempts: int) -> OutboxStatus:
        """Status the entry moves to once the current failed attempt is counted."""
        if self.attempts + 1 >= max_attempts:
            return OutboxStatus.FAILED
        return OutboxStatus.PENDING

    def payload(self) -> dict[str, Any]:
        return {"email": self.recipient, "message": self.message}
