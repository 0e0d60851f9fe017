"""Entry point for the lot ledger service."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from .api.routes.ledger import router as ledger_router
from .core.config import get_settings
from .core.logging import setup_logging
from .core.telemetry import setup_telemetry
from .db.session import dispose_engine, get_engine

logger = logging.getLogger("lotledger")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, version="0.1.0")

    @app.on_event("startup")
    async def startup_event() -> None:
        setup_logging()
        engine = get_engine()
        setup_telemetry(app, settings, engine)
        logger.info("Ledger service configuration", extra=settings.dict_for_logging())

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await dispose_engine()

    @app.get("/health", tags=["system"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(ledger_router, prefix=settings.api_prefix, tags=["ledger"])
    return app


app = create_app()


__all__ = ["app", "create_app"]
