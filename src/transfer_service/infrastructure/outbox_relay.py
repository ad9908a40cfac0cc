import asyncio
import contextlib
from datetime import timedelta

import httpx
import structlog

from transfer_service.config import settings
from transfer_service.domain.models import OutboxEntry, OutboxStatus
from transfer_service.infrastructure.database import Database
from transfer_service.infrastructure.metrics import OUTBOX_DELIVERIES_TOTAL, OUTBOX_PENDING_ENTRIES
from transfer_service.infrastructure.notifications import NotificationClient
from transfer_service.infrastructure.repositories.outbox import OutboxRepository
from transfer_service.infrastructure.resilience import CircuitOpenError


logger = structlog.get_logger()


class OutboxRelay:
    """
    Delivers queued notifications to the notification service.

    Implements the relay side of the Outbox Pattern:
    - Fixed-interval polling, oldest entries first
    - Rows are claimed (moved to in_flight) before dispatch, so overlapping
      cycles never pick the same row
    - A claim that goes stale without a recorded outcome counts as a failed
      attempt and the entry is released
    - Every failed attempt is counted; an entry reaching max attempts is
      demoted to failed and never polled again
    - Delivery is at-least-once
    """

    def __init__(
        self,
        database: Database,
        notifier: NotificationClient,
        batch_size: int | None = None,
        poll_interval: float | None = None,
        max_attempts: int | None = None,
        claim_timeout: float | None = None,
    ) -> None:
        self._database = database
        self._notifier = notifier
        self._batch_size = settings.outbox_batch_size if batch_size is None else batch_size
        self._poll_interval = settings.outbox_poll_interval_seconds if poll_interval is None else poll_interval
        self._max_attempts = settings.outbox_max_attempts if max_attempts is None else max_attempts
        if claim_timeout is None:
            claim_timeout = settings.outbox_claim_timeout_seconds
        self._claim_timeout = timedelta(seconds=claim_timeout)
        self._stopped = asyncio.Event()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> None:
        """Poll until stop() is called."""
        self._running = True
        self._stopped.clear()
        logger.info(
            "outbox_relay_started",
            batch_size=self._batch_size,
            poll_interval=self._poll_interval,
            max_attempts=self._max_attempts,
        )

        try:
            while not self._stopped.is_set():
                try:
                    await self.process_batch()
                except Exception as e:
                    logger.error("outbox_cycle_failed", error=str(e), exc_info=True)

                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stopped.wait(), timeout=self._poll_interval)
        finally:
            self._running = False
            logger.info("outbox_relay_stopped")

    async def stop(self) -> None:
        self._stopped.set()

    async def process_batch(self) -> int:
        """Claim and deliver one batch.

        Returns:
            Number of entries handled in this cycle.
        """
        async with self._database.session() as session:
            outbox_repo = OutboxRepository(session)
            expired = await outbox_repo.expire_stale_claims(
                max_attempts=self._max_attempts,
                claim_timeout=self._claim_timeout,
            )
            entries = await outbox_repo.claim_batch(
                limit=self._batch_size,
                max_attempts=self._max_attempts,
            )
            await session.commit()

        for entry in expired:
            self._report_failure(entry, entry.status, entry.attempts, entry.last_error or "")

        for entry in entries:
            try:
                await self._deliver(entry)
            except Exception as e:
                # Left in_flight; the stale claim is counted as a failed attempt later.
                logger.error("outbox_entry_processing_error", entry_id=entry.id, error=str(e), exc_info=True)

        await self._refresh_pending_gauge()
        return len(entries)

    async def _deliver(self, entry: OutboxEntry) -> None:
        error: str | None = None
        try:
            response = await self._notifier.send(entry)
        except CircuitOpenError as e:
            error = str(e)
        except (httpx.HTTPError, TimeoutError) as e:
            error = str(e) or type(e).__name__
        else:
            if response.is_success:
                await self._mark_sent(entry)
                return
            error = f"HTTP {response.status_code}"

        await self._record_failure(entry, error)

    async def _mark_sent(self, entry: OutboxEntry) -> None:
        async with self._database.session() as session:
            await OutboxRepository(session).mark_sent(entry.id)
            await session.commit()

        OUTBOX_DELIVERIES_TOTAL.labels(outcome="sent").inc()
        logger.info("outbox_entry_sent", entry_id=entry.id, attempts=entry.attempts + 1)

    async def _record_failure(self, entry: OutboxEntry, error: str) -> None:
        status = entry.status_after_failure(self._max_attempts)
        async with self._database.session() as session:
            await OutboxRepository(session).record_failure(entry.id, error, status)
            await session.commit()

        self._report_failure(entry, status, entry.attempts + 1, error)

    def _report_failure(self, entry: OutboxEntry, status: OutboxStatus, attempts: int, error: str) -> None:
        if status is OutboxStatus.FAILED:
            OUTBOX_DELIVERIES_TOTAL.labels(outcome="failed").inc()
            logger.error("outbox_entry_failed", entry_id=entry.id, attempts=attempts, error=error)
        else:
            OUTBOX_DELIVERIES_TOTAL.labels(outcome="retry").inc()
            logger.warning("outbox_entry_retry_scheduled", entry_id=entry.id, attempts=attempts, error=error)

    async def _refresh_pending_gauge(self) -> None:
        async with self._database.session() as session:
            OUTBOX_PENDING_ENTRIES.set(await OutboxRepository(session).count_pending())
