"""
FastAPI application factory.

Assembles the app, installs the request pipeline, registers all routers,
and wires up lifecycle events.  Database schema is managed by Alembic —
NOT create_all.
"""

import logging

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from app.controllers.activity_log_controller import router as activity_log_router
from app.controllers.auth_controller import admin_router as auth_admin_router
from app.controllers.auth_controller import router as auth_router
from app.controllers.profile_controller import router as profile_router
from app.controllers.region_controller import admin_router as region_admin_router
from app.controllers.region_controller import router as region_router
from app.controllers.user_controller import router as user_router
from app.core.config import settings
from app.core.database import AsyncSessionLocal, engine
from app.core.errors import register_exception_handlers
from app.core.logging_config import setup_logging
from app.middleware.pipeline import PipelineMiddleware
from app.middleware.stages import build_request_pipeline
from app.models import Base  # noqa: F401 — ensures all models are registered
from app.services import activity_service, region_service

setup_logging()
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    register_exception_handlers(app)
    app.add_middleware(
        PipelineMiddleware,
        pipeline=build_request_pipeline(region_service.region_resolver),
    )

    # ── Register routers ─────────────────────────────────────────────
    app.include_router(auth_router)
    app.include_router(auth_admin_router)
    app.include_router(profile_router)
    app.include_router(user_router)
    app.include_router(region_router)
    app.include_router(region_admin_router)
    app.include_router(activity_log_router)

    # ── Startup / Shutdown ───────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup() -> None:
        """Seed the configured regions if the table is empty.

        NOTE: Database schema is managed by Alembic migrations.
        Run `alembic upgrade head` before starting the app.
        """
        try:
            async with AsyncSessionLocal() as session:
                await region_service.seed_default_regions(session)
                await session.commit()
        except (SQLAlchemyError, OSError):
            logger.exception("Region seed skipped; falling back to configured regions")
        region_service.region_resolver.invalidate()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await activity_service.drain_pending()
        await engine.dispose()
        logger.info("Database engine disposed.")

    # ── Health check ─────────────────────────────────────────────────
    @app.get("/", tags=["Health"])
    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
