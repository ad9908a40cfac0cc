from datetime import UTC, datetime, timedelta
from typing import Any, cast

from sqlalchemy import CursorResult, Row, text
from sqlalchemy.ext.asyncio import AsyncSession

from transfer_service.domain.models import OutboxEntry, OutboxStatus


_COLUMNS = """
    id, recipient, message, status, attempts, last_error,
    created_at, updated_at, claimed_at
"""

STALE_CLAIM_ERROR = "Claim expired before the delivery outcome was recorded"


def _to_entry(row: Row[Any]) -> OutboxEntry:
    return OutboxEntry(
        id=row.id,
        recipient=row.recipient,
        message=row.message,
        status=OutboxStatus(row.status),
        attempts=row.attempts,
        last_error=row.last_error,
        created_at=row.created_at,
        updated_at=row.updated_at,
        claimed_at=row.claimed_at,
    )


class OutboxRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, entry: OutboxEntry) -> None:
        await self._session.execute(
            text("""
                INSERT INTO notification_outbox
                    (id, recipient, message, status, attempts, last_error,
                     created_at, updated_at)
                VALUES
                    (:id, :recipient, :message, :status, :attempts, :last_error,
                     :created_at, :updated_at)
            """),
            {
                "id": entry.id,
                "recipient": entry.recipient,
                "message": entry.message,
                "status": entry.status.value,
                "attempts": entry.attempts,
                "last_error": entry.last_error,
                "created_at": entry.created_at,
                "updated_at": entry.updated_at,
            },
        )

    async def get(self, entry_id: str) -> OutboxEntry | None:
        result = await self._session.execute(
            text(f"SELECT {_COLUMNS} FROM notification_outbox WHERE id = :id"),
            {"id": entry_id},
        )
        row = result.fetchone()
        return _to_entry(row) if row else None

    async def expire_stale_claims(self, max_attempts: int, claim_timeout: timedelta) -> list[OutboxEntry]:
        """Count claims older than `claim_timeout` as failed attempts.

        A relay that stopped before recording its outcome leaves the row in_flight.
        Such rows go back to pending, or to failed once the counted attempt
        reaches `max_attempts`.
        """
        now = datetime.now(UTC)
        result = await self._session.execute(
            text(f"""
                UPDATE notification_outbox
                SET attempts = attempts + 1,
                    status = CASE
                        WHEN attempts + 1 >= :max_attempts THEN 'failed'
                        ELSE 'pending'
                    END,
                    last_error = :error,
                    claimed_at = NULL,
                    updated_at = :now
                WHERE id IN (
                    SELECT id
                    FROM notification_outbox
                    WHERE status = 'in_flight' AND claimed_at < :stale_before
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING {_COLUMNS}
            """),
            {
                "now": now,
                "stale_before": now - claim_timeout,
                "max_attempts": max_attempts,
                "error": STALE_CLAIM_ERROR,
            },
        )
        return [_to_entry(row) for row in result.fetchall()]

    async def claim_batch(self, limit: int, max_attempts: int) -> list[OutboxEntry]:
        """Atomically move up to `limit` pending entries below the attempt ceiling to in_flight.

        Oldest first.
        """
        now = datetime.now(UTC)
        result = await self._session.execute(
            text(f"""
                UPDATE notification_outbox
                SET status = 'in_flight',
                    claimed_at = :now,
                    updated_at = :now
                WHERE id IN (
                    SELECT id
                    FROM notification_outbox
                    WHERE status = 'pending' AND attempts < :max_attempts
                    ORDER BY created_at
                    LIMIT :limit
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING {_COLUMNS}
            """),
            {
                "now": now,
                "max_attempts": max_attempts,
                "limit": limit,
            },
        )
        entries = [_to_entry(row) for row in result.fetchall()]
        # RETURNING does not preserve the subquery order
        return sorted(entries, key=lambda entry: entry.created_at)

    async def mark_sent(self, entry_id: str) -> bool:
        result = cast(
            "CursorResult[Any]",
            await self._session.execute(
                text("""
                    UPDATE notification_outbox
                    SET status = 'sent',
                        claimed_at = NULL,
                        updated_at = :now
                    WHERE id = :id AND status = 'in_flight'
                """),
                {"id": entry_id, "now": datetime.now(UTC)},
            ),
        )
        return (result.rowcount or 0) == 1

    async def record_failure(self, entry_id: str, error: str, status: OutboxStatus) -> bool:
        result = cast(
            "CursorResult[Any]",
            await self._session.execute(
                text("""
                    UPDATE notification_outbox
                    SET attempts = attempts + 1,
                        last_error = :error,
                        status = :status,
                        claimed_at = NULL,
                        updated_at = :now
                    WHERE id = :id AND status = 'in_flight'
                """),
                {
                    "id": entry_id,
                    "error": error[:1000],
                    "status": status.value,
                    "now": datetime.now(UTC),
                },
            ),
        )
        return (result.rowcount or 0) == 1

    async def count_pending(self) -> int:
        result = await self._session.execute(
            text("""
                SELECT COUNT(*) FROM notification_outbox
                WHERE status IN ('pending', 'in_flight')
            """)
        )
        return int(result.scalar_one())
