"""
Integration hooks for the host FastAPI application.

The authentication flow owns the HTTP surface; it mounts this lifespan so
the retention schedule runs alongside the app:

    from loginwatch.main import lifespan
    app = FastAPI(lifespan=lifespan)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from loginwatch.core.config import APP_VERSION, settings
from loginwatch.core.logging import setup_logging
from loginwatch.core.redis import close_redis
from loginwatch.services.scheduler import scheduler_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of the login audit engine."""
    setup_logging()

    logger.info("Starting %s %s retention scheduler", settings.APP_NAME, APP_VERSION)
    scheduler_service.start()

    yield

    logger.info("Stopping %s retention scheduler", settings.APP_NAME)
    scheduler_service.stop()
    await scheduler_service.dispose()
    await close_redis()
