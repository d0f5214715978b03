from contextlib import asynccontextmanager
from fastapi import FastAPI

from cibot.core.config import settings
from cibot.core.logging import get_logger, setup_logging
from cibot.db.session import engine

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Lifespan function for the FastAPI application.
    Handles startup and shutdown events for application services.
    """
    # 1. Configure logging
    setup_logging(settings.LOG_LEVEL)
    logger.info("%s starting, policy file %s", settings.PROJECT_NAME, settings.POLICY_PATH)

    yield

    # 2. Dispose Database Engine
    await engine.dispose()
