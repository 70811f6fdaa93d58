# src/replied/main.py
"""Main entry point for the Replied application."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from replied.api.v1 import messages_router, profiles_router
from replied.core.container import ServiceContainer, build_container
from replied.core.settings import Settings, settings

logger = logging.getLogger(__name__)

ContainerFactory = Callable[[Settings], ServiceContainer]


def _configure_logging(config: Settings) -> None:
    logging.basicConfig(format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    logging.getLogger("replied").setLevel(config.log_level.upper())


def create_app(
    config: Settings | None = None,
    container_factory: ContainerFactory = build_container,
) -> FastAPI:
    """Build the FastAPI application.

    Services are constructed when the application starts and torn down when
    it stops; a missing encryption key aborts start-up.
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        _configure_logging(config)
        container = container_factory(config)
        app.state.container = container
        logger.info("%s %s started", config.app_name, config.app_version)
        try:
            yield
        finally:
            await container.close()
            logger.info("%s stopped", config.app_name)

    app = FastAPI(
        title="Replied API",
        description="Anonymous inbox and reply API",
        version=config.app_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=config.cors_allow_credentials,
        allow_methods=config.cors_allow_methods,
        allow_headers=config.cors_allow_headers,
    )

    app.include_router(messages_router, prefix="/api/v1")
    app.include_router(profiles_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint to verify the service is running."""
        return {"status": "ok"}

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with basic information about the API."""
        return {
            "name": "Replied API",
            "version": config.app_version,
            "docs": "/docs",
            "redoc": "/redoc",
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("replied.main:app", host="0.0.0.0", port=8080, reload=settings.debug)
