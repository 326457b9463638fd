"""Application entrypoint for the workshop status service."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI

from ._version import __version__
from .api.routes import router as api_router
from .config import AppConfig, get_settings
from .services.vault_client import WorkshopVaultClient

LOGGER = logging.getLogger(__name__)


def default_vault_factory(settings: AppConfig) -> WorkshopVaultClient:
    return WorkshopVaultClient.from_config(settings.vault)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: AppConfig = app.state.settings
    LOGGER.info("Starting workshop status service", extra={"service": settings.service_name})
    yield
    LOGGER.info("Shutting down workshop status service")


def create_app(
    settings: Optional[AppConfig] = None,
    vault_factory: Callable[[AppConfig], WorkshopVaultClient] = default_vault_factory,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or get_settings()

    app = FastAPI(
        title="Vault Workshop",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(api_router, prefix=settings.api_prefix)

    app.state.settings = settings
    app.state.vault_factory = vault_factory

    return app


if __name__ == "__main__":  # pragma: no cover
    import uvicorn

    logging.basicConfig(level=get_settings().logging.level, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    uvicorn.run(create_app(), host="127.0.0.1", port=8000, reload=False)
