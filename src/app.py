"""Stylish checkout FastAPI application.

Serves the checkout endpoint. Collaborators are built once per app from
``Settings`` and kept on ``app.state``; nothing is a process-wide global.

Usage:
    uvicorn app:main_app --factory --app-dir src --host 0.0.0.0 --port 8000
"""

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ordering.api import request_validation_handler, router
from ordering.checkout.factory import build_orchestrator
from ordering.domain import ordering
from shared.config import Settings
from shared.db import create_db_engine
from shared.logging import configure_logging, get_logger

logger = get_logger(__name__)


def create_app(settings: Settings | None = None, orchestrator=None, engine=None) -> FastAPI:
    settings = settings or Settings.from_env()
    engine = engine or create_db_engine(settings.database_uri)

    app = FastAPI(
        title="Stylish Checkout API",
        description="Checkout pipeline: stock, payment capture and order persistence",
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.orchestrator = orchestrator or build_orchestrator(settings, engine=engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(router)

    # -----------------------------------------------------------------------
    # Health
    # -----------------------------------------------------------------------
    @app.get("/health")
    def health():
        try:
            with app.state.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.error("Health check failed", error=str(exc))
            return JSONResponse(status_code=503, content={"status": "error", "database": "unavailable"})
        return JSONResponse(
            content={
                "status": "ok",
                "database": "ok",
                "domain": ordering.name,
                "gateway": settings.gateway,
                "legacy_responses": settings.legacy_responses,
            }
        )

    logger.info("Checkout app created", env=settings.env, gateway=settings.gateway)
    return app


def main_app() -> FastAPI:
    """Entry point for uvicorn's ``--factory`` mode."""
    configure_logging()
    ordering.init()
    return create_app()
