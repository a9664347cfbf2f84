"""Application factory and CLI entry point.

``create_app()`` builds the FastAPI application with:
  - Lifespan handler that validates the questionnaire and builds the services once
  - CORS middleware
  - Global exception handlers (SurveyError → its own status, DB errors → 503)
  - All API routes mounted under ``/api/v1``
  - A ``/health`` endpoint for readiness checks

The ``cli()`` function is the ``survey-server`` console-script entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from survey_db.engine import dispose_engine, get_engine
from survey_flow.admin import AdminService
from survey_flow.engine import SurveyEngine
from survey_flow.errors import SurveyError
from survey_flow.insights import SummaryGenerator
from survey_flow.store import QuestionnaireStore

from survey_server.config import ServerSettings, load_settings
from survey_server.errors import (
    generic_error_handler,
    sqlalchemy_error_handler,
    survey_error_handler,
)
from survey_server.routes import register_routes

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Lifespan — runs once at startup/shutdown
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialise shared resources at startup, tear down on shutdown.

    Startup:
      1. Load and cross-check the questionnaire YAML (fail fast if broken)
      2. Build ``SurveyEngine``, ``AdminService`` and (with a key) the AI summarizer
      3. Stash the services on ``app.state`` for dependency injection

    Shutdown:
      1. Dispose the database engine's connection pool
    """
    settings: ServerSettings = app.state.settings

    # --- Load questionnaire ---
    store = QuestionnaireStore(questionnaire_dir=settings.questionnaire_dir)
    store.load()
    logger.info("Questionnaire OK: %d phases", len(store.phases))

    app.state.engine = SurveyEngine()
    app.state.admin = AdminService(confirmation_phrase=settings.confirmation_phrase)
    if settings.openai_api_key:
        app.state.summarizer = SummaryGenerator(settings.openai_api_key, model=settings.openai_model)
    else:
        logger.info("OPENAI_API_KEY not set; AI summaries disabled")
        app.state.summarizer = None

    yield

    # --- Shutdown ---
    await dispose_engine()
    logger.info("Database engine disposed")


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------

def create_app(settings: ServerSettings | None = None) -> FastAPI:
    """Build and return the configured FastAPI application."""
    if settings is None:
        settings = load_settings()

    # --- Configure logging ---
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title="Survey API Server",
        description="REST API for the multi-phase survey flow",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store settings so the lifespan handler can read them
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
    app.add_exception_handler(SurveyError, survey_error_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)

    # --- Health check (outside /api/v1 prefix) ---
    @app.get("/health")
    async def health() -> dict:
        """Readiness check: verifies DB connectivity."""
        try:
            async with get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "ok"}
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Health check failed: %s", exc)
            return {"status": "error", "detail": "database unavailable"}

    # --- Mount all API routes ---
    register_routes(app)

    return app


# ------------------------------------------------------------------
# Module-level ASGI export (for uvicorn survey_server.app:app)
# ------------------------------------------------------------------
app = create_app()


# ------------------------------------------------------------------
# CLI entry point
# ------------------------------------------------------------------

def cli() -> None:
    """Console-script entry point: ``survey-server``."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "survey_server.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
