#!/usr/bin/env python3
"""Outbox relay entrypoint script.

Runs the OutboxRelay as a standalone worker that polls the notification
outbox and delivers pending entries to the notification service. Use it
with OUTBOX_RELAY_ENABLED=false on the API instances.
"""
import asyncio
import signal

import httpx
import structlog

from transfer_service.config import settings
from transfer_service.infrastructure.database import Database
from transfer_service.infrastructure.notifications import NotificationClient
from transfer_service.infrastructure.outbox_relay import OutboxRelay
from transfer_service.infrastructure.resilience import (
    CallPolicy,
    CircuitBreakerRegistry,
    ResilientHttpClient,
)
from transfer_service.logging import configure_logging


logger = structlog.get_logger()


async def main() -> None:
    configure_logging(level=settings.log_level, log_format=settings.log_format)

    logger.info(
        "outbox_relay_starting",
        database_url=settings.database_url.split("@")[-1],
        notify_url=settings.notify_url,
        batch_size=settings.outbox_batch_size,
        poll_interval=settings.outbox_poll_interval_seconds,
    )

    database = Database(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        statement_timeout_ms=settings.db_statement_timeout_ms,
    )
    http_client = httpx.AsyncClient(timeout=None)
    breakers = CircuitBreakerRegistry(
        open_after=settings.circuit_open_after,
        cool_down_seconds=settings.circuit_cool_down_seconds,
    )
    notifier = NotificationClient(
        ResilientHttpClient(http_client, breakers),
        settings.notify_url,
        CallPolicy(
            timeout_seconds=settings.notify_timeout_seconds,
            max_retries=settings.notify_max_retries,
            backoff_base_seconds=settings.notify_backoff_base_seconds,
        ),
    )
    relay = OutboxRelay(database=database, notifier=notifier)

    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("shutdown_signal_received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    relay_task = asyncio.create_task(relay.run())

    try:
        await shutdown_event.wait()
    finally:
        logger.info("initiating_graceful_shutdown")
        await relay.stop()
        relay_task.cancel()
        try:
            await relay_task
        except asyncio.CancelledError:
            pass
        await http_client.aclose()
        await database.close()
        logger.info("outbox_relay_shutdown_complete")


if __name__ == "__main__":
    asyncio.run(main())
