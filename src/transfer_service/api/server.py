import asyncio
import contextlib
from collections.abc import Generator

import structlog
import uvicorn
from fastapi import FastAPI


logger = structlog.get_logger()


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the host process."""

    @contextlib.contextmanager
    def capture_signals(self) -> Generator[None, None, None]:
        yield


class ApiServer:
    """Runs the API with uvicorn inside an existing event loop."""

    def __init__(self, app: FastAPI, host: str = "0.0.0.0", port: int = 3005) -> None:
        self._app = app
        self._host = host
        self._port = port
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        config = uvicorn.Config(
            self._app,
            host=self._host,
            port=self._port,
            log_config=None,
            access_log=False,
        )
        self._server = _EmbeddedServer(config)

        self._task = asyncio.create_task(self._server.serve())
        logger.info("api_server_started", host=self._host, port=self._port)

    async def wait(self) -> None:
        """Return once the server has exited. Cancelling the caller leaves the server running."""
        if self._task:
            await asyncio.wait({self._task})

    async def stop(self) -> None:
        if self._server:
            self._server.should_exit = True

        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=10.0)
            except TimeoutError:
                self._task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._task

        logger.info("api_server_stopped")
