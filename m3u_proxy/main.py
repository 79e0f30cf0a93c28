from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from m3u_proxy import __version__
from m3u_proxy.config import setup_logging
from m3u_proxy.services.scheduler_service import refresh_scheduler

from m3u_proxy.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting m3u-proxy...")

    try:
        refresh_scheduler.start()
        logger.info("m3u-proxy started successfully")
    except Exception as e:
        logger.error(f"Failed to start m3u-proxy: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down m3u-proxy...")

    try:
        refresh_scheduler.shutdown()
    except Exception as e:
        logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)

    logger.info("m3u-proxy stopped")


app = FastAPI(
    title="m3u-proxy",
    version=__version__,
    lifespan=lifespan
)

app.include_router(main_router)
