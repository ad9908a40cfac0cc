"""Shared pytest fixtures for transfer service tests."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import httpx
import pytest

from transfer_service.application.unit_of_work import UnitOfWork
from transfer_service.domain.models import Account, AccountKind, OutboxEntry, OutboxStatus


PAYER_ID = "0b9c6c1e-6d3f-4c1b-9a55-3d1f1e6a0001"
PAYEE_ID = "0b9c6c1e-6d3f-4c1b-9a55-3d1f1e6a0002"


@pytest.fixture
def mock_account_repository() -> AsyncMock:
    """Create mock AccountRepository."""
    repo = AsyncMock()
    repo.get = AsyncMock(return_value=None)
    repo.add = AsyncMock(return_value=None)
    repo.debit_if_sufficient = AsyncMock(return_value=True)
    repo.credit = AsyncMock(return_value=None)
    return repo


@pytest.fixture
def mock_transfer_repository() -> AsyncMock:
    """Create mock TransferRepository."""
    repo = AsyncMock()
    repo.get_by_idempotency_key = AsyncMock(return_value=None)
    repo.add = AsyncMock(return_value=None)
    return repo


@pytest.fixture
def mock_outbox_repository() -> AsyncMock:
    """Create mock OutboxRepository."""
    repo = AsyncMock()
    repo.add = AsyncMock(return_value=None)
    repo.get = AsyncMock(return_value=None)
    repo.expire_stale_claims = AsyncMock(return_value=[])
    repo.claim_batch = AsyncMock(return_value=[])
    repo.mark_sent = AsyncMock(return_value=True)
    repo.record_failure = AsyncMock(return_value=True)
    repo.count_pending = AsyncMock(return_value=0)
    return repo


@pytest.fixture
def mock_uow(
    mock_account_repository: AsyncMock,
    mock_transfer_repository: AsyncMock,
    mock_outbox_repository: AsyncMock,
) -> AsyncMock:
    """Create mock Unit of Work with all repositories."""
    uow = AsyncMock(spec=UnitOfWork)
    uow.accounts = mock_account_repository
    uow.transfers = mock_transfer_repository
    uow.outbox = mock_outbox_repository
    uow.commit = AsyncMock(return_value=None)
    uow.rollback = AsyncMock(return_value=None)

    # Configure async context manager
    uow.__aenter__ = AsyncMock(return_value=uow)
    uow.__aexit__ = AsyncMock(return_value=None)

    return uow


@pytest.fixture
def mock_authorizer() -> AsyncMock:
    """Create mock AuthorizationClient that approves everything."""
    authorizer = AsyncMock()
    authorizer.authorize = AsyncMock(return_value=True)
    return authorizer


@pytest.fixture
def sample_payer_account() -> Account:
    """Create sample personal payer account with $500.00."""
    return create_account(PAYER_ID, balance_cents=50000, email="payer@example.com")


@pytest.fixture
def sample_payee_account() -> Account:
    """Create sample payee account with $100.00."""
    return create_account(PAYEE_ID, balance_cents=10000, email="payee@example.com")


def create_account(
    account_id: str,
    balance_cents: int = 10000,
    kind: AccountKind = AccountKind.PERSONAL,
    name: str = "Test Account",
    email: str | None = None,
) -> Account:
    """Helper to create Account with custom values."""
    return Account(
        id=account_id,
        name=name,
        email=email or f"{account_id}@example.com",
        kind=kind,
        balance_cents=balance_cents,
        created_at=datetime.now(UTC),
        updated_at=datetime.now(UTC),
    )


def create_outbox_entry(
    entry_id: str = "01HZXK5Y3N8Q2W7E4R6T9P0S1A",
    attempts: int = 0,
    status: OutboxStatus = OutboxStatus.IN_FLIGHT,
    recipient: str = "payee@example.com",
) -> OutboxEntry:
    """Helper to create a claimed OutboxEntry."""
    return OutboxEntry(
        id=entry_id,
        recipient=recipient,
        message="You received a transfer of 10000",
        status=status,
        attempts=attempts,
    )


def json_response(status_code: int, body: object) -> httpx.Response:
    return httpx.Response(status_code, json=body)
