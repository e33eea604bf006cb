"""FastAPI application entry point for PagePick."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pagepick.api.routes import get_workbench, router
from pagepick.config.settings import APIConfig, PagePickConfig
from pagepick.telemetry.errors import configure_logging

VERSION = "1.0.0"


@asynccontextmanager
async def _lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await get_workbench().close()


def create_app(config: PagePickConfig | None = None) -> FastAPI:
    """Factory function for creating the FastAPI application."""
    config = config or PagePickConfig()
    configure_logging(config.log_level)

    app = FastAPI(
        title="PagePick",
        description="Point-and-click field extraction workbench",
        version=VERSION,
        lifespan=_lifespan,
    )

    api_config: APIConfig = config.api
    app.add_middleware(
        CORSMiddleware,
        allow_origins=api_config.allowed_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy", "service": "pagepick", "version": VERSION}

    return app


app = create_app()
