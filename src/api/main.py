"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine

from src.api.routes import actors, audit_logs, health, listings
from src.config import settings
from src.infrastructure.database import connection
from src.infrastructure.database.models import init_models
from src.infrastructure.logging_config import configure_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    db_engine: AsyncEngine = app.state.db_engine
    if settings.database_create_tables:
        # Local development only; deployed schemas come from Alembic
        await init_models(db_engine)
        logger.info("listing_tables_ensured", dialect=db_engine.dialect.name)
    logger.info("haven_listings_api_started", audit_enabled=settings.audit_enabled)
    try:
        yield
    finally:
        await db_engine.dispose()
        logger.info("haven_listings_api_stopped")


def create_app(db_engine: AsyncEngine | None = None) -> FastAPI:
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Haven Listings",
        description="Listing moderation and audit log API for the vacation-rental marketplace.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.db_engine = db_engine or connection.engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["X-Actor-Id", "X-Actor-Role", "Content-Type"],
    )

    for router in (health.router, listings.router, audit_logs.router, actors.router):
        app.include_router(router)

    return app


app = create_app()
