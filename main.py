"""
Application entry point
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.v1.router import api_router
from src.core.config import settings
from src.core.exceptions import register_exception_handlers
from src.core.logging import setup_logging
from src.db.session import dispose_engine, get_session_factory
from src.jobs.lifecycle import LifecycleJobs
from src.jobs.scheduler import build_scheduler
from src.services.limits import close_redis
from src.services.locks import JobLock
from src.services.notifications import NotificationGateway, build_gateway


logger = logging.getLogger(__name__)


def create_application(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    gateway: Optional[NotificationGateway] = None,
) -> FastAPI:
    """
    Build the FastAPI app; arguments replace the configured database and
    notification gateway
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging()
        notification_gateway = gateway or build_gateway(settings.notifications)
        jobs = LifecycleJobs(
            session_factory or get_session_factory(), notification_gateway, JobLock()
        )
        app.state.notification_gateway = notification_gateway
        app.state.lifecycle_jobs = jobs

        scheduler = None
        if settings.scheduler.enabled:
            scheduler = build_scheduler(jobs, settings.scheduler)
            scheduler.start()
        logger.info(f"{settings.PROJECT_NAME} started in {settings.ENV}")

        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown(wait=False)
            await notification_gateway.aclose()
            await close_redis()
            if session_factory is None:
                await dispose_engine()
            logger.info(f"{settings.PROJECT_NAME} stopped")

    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=f"{settings.API_PREFIX}/v1")

    @app.get("/health", tags=["health"])
    async def health() -> dict:
        return {"status": "ok", "env": settings.ENV}

    return app


app = create_application()
