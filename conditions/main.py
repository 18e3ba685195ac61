"""
Conditions - Main FastAPI Application
"""
from fastapi import FastAPI

from conditions.api.routes import router as api_router
from conditions.api.routes.health import router as health_router
from conditions.core.config import settings
from conditions.core.logging import get_logger, setup_logging
from conditions.core.middleware import setup_exception_handlers, setup_middleware
from conditions.db.database import AsyncSessionLocal, Base, engine
from conditions.db.repositories import MassifRepository
from conditions.domain.massif_directory import MassifDirectory
from conditions.state_machine.session_store import ConversationSessionStore

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)

_OPENAPI_TAGS = [
    {"name": "cron", "description": "Manual bulletin cron runs and their audit trail."},
    {"name": "webhooks", "description": "WhatsApp Cloud API webhook."},
    {"name": "Health", "description": "Database, massif directory and circuit breaker state."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="French avalanche bulletin (BRA) notifications for Telegram and WhatsApp.",
    openapi_tags=_OPENAPI_TAGS,
)

setup_middleware(app)
setup_exception_handlers(app)

app.include_router(api_router, prefix="/api")
app.include_router(health_router)


@app.on_event("startup")
async def startup() -> None:
    """Create tables, apply migrations and load the massif directory"""
    logger.info("Starting application", extra_data={"app_name": settings.APP_NAME})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")

    # create_all does not touch existing tables; migrations only run on PostgreSQL
    if engine.dialect.name == "postgresql":
        from conditions.db.migrations import run_all_migrations

        async with engine.begin() as conn:
            await run_all_migrations(conn)
        logger.info("Auto-migrations completed")

    directory = MassifDirectory()
    async with AsyncSessionLocal() as session:
        await directory.initialize(MassifRepository(session))
    app.state.directory = directory
    app.state.sessions = ConversationSessionStore()


@app.on_event("shutdown")
async def shutdown() -> None:
    logger.info("Shutting down application")
    await engine.dispose()
    logger.info("Database connections disposed")
