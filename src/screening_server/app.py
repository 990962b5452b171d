"""Application factory and CLI entry point.

``create_app()`` builds the FastAPI application with:
  - Lifespan handler that builds the ``ScreeningEngine`` once
  - CORS middleware
  - Exception handlers mapping engine errors to 422 / 500
  - All API routes mounted under ``/api/v1``
  - A ``/health`` endpoint for readiness checks

The ``cli()`` function is the ``screening-server`` console-script entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from screening_db.engine import dispose_engine, get_engine
from screening_engine.engine import ScreeningEngine
from screening_engine.errors import ScreeningError, ValidationError

from screening_server.config import ServerSettings, load_settings
from screening_server.errors import (
    generic_error_handler,
    screening_error_handler,
    validation_error_handler,
)
from screening_server.routes import register_routes

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Lifespan — runs once at startup/shutdown
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the engine at startup; dispose the DB pool on shutdown."""
    app.state.engine = ScreeningEngine()
    logger.info("ScreeningEngine ready")

    yield

    await dispose_engine()
    logger.info("Database engine disposed")


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------

def create_app(settings: ServerSettings | None = None) -> FastAPI:
    """Build and return the configured FastAPI application."""
    if settings is None:
        settings = load_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title="Screening API Server",
        description="REST API for adaptive behavioral-health screening sessions",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.enable_docs else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.enable_docs else None,
    )
    app.state.settings = settings

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Exception handlers ---
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(ScreeningError, screening_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)

    # --- Health check (outside /api/v1 prefix) ---
    @app.get("/health")
    async def health() -> dict:
        """Readiness check — verifies DB connectivity."""
        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "ok"}
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Health check failed: %s", exc)
            return {"status": "error", "detail": "database unavailable"}

    register_routes(app)

    return app


# ------------------------------------------------------------------
# CLI entry point
# ------------------------------------------------------------------

def cli() -> None:
    """Console-script entry point: ``screening-server``."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "screening_server.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
