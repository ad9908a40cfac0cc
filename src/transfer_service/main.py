import asyncio
import contextlib
import signal

import structlog

from transfer_service.api.app import create_app
from transfer_service.api.server import ApiServer
from transfer_service.config import settings
from transfer_service.container import build_container
from transfer_service.infrastructure.outbox_relay import OutboxRelay
from transfer_service.logging import configure_logging


logger = structlog.get_logger()


async def main() -> None:
    configure_logging(
        level=settings.log_level,
        log_format=settings.log_format,
    )

    logger.info(
        "starting_transfer_service",
        api_port=settings.api_port,
        log_level=settings.log_level,
        rate_limit_enabled=settings.rate_limit_enabled,
        outbox_relay_enabled=settings.outbox_relay_enabled,
    )

    container = await build_container(settings)
    server = ApiServer(create_app(container), host=settings.api_host, port=settings.api_port)

    relay: OutboxRelay | None = None
    relay_task: asyncio.Task[None] | None = None
    if settings.outbox_relay_enabled:
        relay = OutboxRelay(database=container.database, notifier=container.notifier)
        relay_task = asyncio.create_task(relay.run())

    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("shutdown_signal_received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    await server.start()

    shutdown_task = asyncio.create_task(shutdown_event.wait())
    server_task = asyncio.create_task(server.wait())
    try:
        # A signal or the API server exiting on its own ends the process.
        done, _ = await asyncio.wait({shutdown_task, server_task}, return_when=asyncio.FIRST_COMPLETED)
        if server_task in done and not shutdown_event.is_set():
            logger.error("api_server_exited")
    finally:
        shutdown_task.cancel()
        server_task.cancel()
        logger.info("shutting_down")
        await server.stop()
        if relay and relay_task:
            await relay.stop()
            try:
                await asyncio.wait_for(relay_task, timeout=10.0)
            except TimeoutError:
                relay_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await relay_task
        await container.close()
        logger.info("transfer_service_stopped")


if __name__ == "__main__":
    asyncio.run(main())
