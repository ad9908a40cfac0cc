from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from transfer_service.api.errors import register_exception_handlers
from transfer_service.api.middleware import RequestContextMiddleware
from transfer_service.api.routes import router
from transfer_service.config import settings
from transfer_service.container import ServiceContainer, build_container


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """Create the API application.

    When no container is given one is built from settings on startup and
    closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if container is not None:
            yield
            return
        app.state.container = await build_container(settings)
        try:
            yield
        finally:
            await app.state.container.close()

    app = FastAPI(title="Transfer Service", version="0.1.0", lifespan=lifespan)
    if container is not None:
        app.state.container = container

    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)
    app.include_router(router)
    return app
