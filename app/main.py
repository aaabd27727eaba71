"""Main FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api.dependencies.tenant import ORG_HEADER
from app.api.exception_handlers import register_exception_handlers
from app.api.middleware.audit import AuditLogMiddleware
from app.api.v1.api import api_router
from app.api.v1.endpoints import health
from app.core.config import settings
from app.core.database import async_session_maker, engine
from app.core.logging import setup_logging
from app.services.storage import get_storage_service
from app.services.task_queue import get_task_queue_service


# Initialize logging
logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan events.

    Startup verifies the database and the documents bucket; shutdown closes
    the task queue pool and the engine.
    """
    logger.info(
        "Starting CANNEO API",
        extra={
            "version": settings.APP_VERSION,
            "env": settings.APP_ENV,
            "debug": settings.APP_DEBUG,
        },
    )

    try:
        async with app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
        logger.info("Database connection verified")
    except SQLAlchemyError as e:
        logger.error(f"Failed to connect to database: {e}")
        raise

    try:
        await get_storage_service().ensure_bucket_exists()
        logger.info("MinIO bucket verified")
    except Exception as e:
        logger.warning(f"MinIO initialization skipped: {e}")

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down CANNEO API")
    await get_task_queue_service().close()
    await engine.dispose()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Telemedicine platform for medicinal cannabis prescription in Brazil",
        docs_url="/api/docs" if settings.APP_DEBUG else None,
        redoc_url="/api/redoc" if settings.APP_DEBUG else None,
        openapi_url="/api/openapi.json" if settings.APP_DEBUG else None,
        lifespan=lifespan,
    )
    app.state.session_factory = async_session_maker

    register_exception_handlers(app)

    app.add_middleware(AuditLogMiddleware, enabled=settings.AUDIT_LOG_ENABLED)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[ORG_HEADER],
    )

    app.include_router(health.router)
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
