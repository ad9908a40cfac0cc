"""Fixtures for tests that run against a real PostgreSQL container."""

import importlib.util
from collections.abc import AsyncIterator, Iterator
from pathlib import Path
from types import ModuleType
from typing import Any

import httpx
import pytest
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import Connection, text
from testcontainers.postgres import PostgresContainer

from transfer_service.domain.models import Account
from transfer_service.infrastructure.database import Database
from transfer_service.infrastructure.repositories import AccountRepository


MIGRATION = Path(__file__).parents[2] / "alembic" / "versions" / "001_initial_schema.py"


def _load_migration() -> ModuleType:
    spec = importlib.util.spec_from_file_location("initial_schema", MIGRATION)
    assert spec and spec.loader
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _upgrade(connection: Connection) -> None:
    migration = _load_migration()
    context = MigrationContext.configure(connection)
    with Operations.context(context):
        migration.upgrade()


@pytest.fixture(scope="module")
def postgres_url() -> Iterator[str]:
    container = PostgresContainer("postgres:16-alpine", driver="asyncpg")
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"PostgreSQL container not available: {e}")
    try:
        yield container.get_connection_url()
    finally:
        container.stop()


@pytest.fixture
async def database(postgres_url: str) -> AsyncIterator[Database]:
    """Database with a freshly migrated schema."""
    database = Database(postgres_url, pool_size=20, max_overflow=10)
    async with database.engine.begin() as conn:
        await conn.execute(text("DROP SCHEMA public CASCADE"))
        await conn.execute(text("CREATE SCHEMA public"))
        await conn.run_sync(_upgrade)
    yield database
    await database.close()


async def seed(database: Database, *accounts: Account) -> None:
    async with database.session() as session:
        repo = AccountRepository(session)
        for account in accounts:
            await repo.add(account)
        await session.commit()


async def balance_of(database: Database, account_id: str) -> int:
    async with database.session() as session:
        account = await AccountRepository(session).get(account_id)
    assert account is not None
    return account.balance_cents


async def count_rows(database: Database, table: str) -> int:
    async with database.session() as session:
        result = await session.execute(text(f"SELECT COUNT(*) FROM {table}"))
        return int(result.scalar_one())


async def no_sleep(delay: float) -> None:
    return None


def responder(status_code: int, body: Any = None) -> httpx.MockTransport:
    return httpx.MockTransport(lambda request: httpx.Response(status_code, json=body))
