# app/main.py
"""
FastAPI application: wires the time inference engine into the app lifespan.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.features.time_inference.api.router import router as time_inference_router
from app.features.time_inference.services.engine import build_engine
from app.features.time_inference.sources.google_source import GoogleWorkspaceSource
from app.features.time_inference.sources.ports import StaticActivitySource
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.routes import health
from app.services.infrastructure.redis_client import RedisClient

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


def _build_source():
    """Google source when a token is configured, otherwise an empty static feed."""
    if settings.GOOGLE_ACCESS_TOKEN:
        return GoogleWorkspaceSource(token_provider=lambda: settings.GOOGLE_ACCESS_TOKEN)
    return StaticActivitySource()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    redis_client = None
    source = _build_source()

    try:
        if settings.uses_redis():
            logger.info("Initializing Redis connection")
            redis_client = RedisClient(settings.REDIS_URL)
            await redis_client.initialize()

        engine = build_engine(settings, source, redis_client=redis_client)
        await engine.initialize()

    except Exception as e:
        logger.error("Failed to initialize services", error=str(e))
        if redis_client is not None:
            try:
                await redis_client.close()
            except Exception as cleanup_error:
                logger.error("Error cleaning up Redis", error=str(cleanup_error))
        raise

    app.state.engine = engine
    app.state.redis_client = redis_client

    if settings.AUTO_SYNC_ON_STARTUP:
        engine.start_auto_sync()

    logger.info("All services initialized successfully", backend="redis" if redis_client else "memory")

    yield

    logger.info("Application shutting down")

    shutdown_errors = []

    try:
        await engine.stop_auto_sync()
    except Exception as e:
        logger.error("Error stopping auto-sync", error=str(e))
        shutdown_errors.append(f"AutoSync: {e}")

    if hasattr(source, "close"):
        try:
            await source.close()
        except Exception as e:
            logger.error("Error closing activity source", error=str(e))
            shutdown_errors.append(f"Source: {e}")

    if redis_client is not None:
        try:
            logger.info("Closing Redis connection")
            await redis_client.close()
        except Exception as e:
            logger.error("Error closing Redis", error=str(e))
            shutdown_errors.append(f"Redis: {e}")

    app.state.engine = None

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Time Inference Engine",
    description="Infers billable time entries from work activity",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(time_inference_router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    logger.info(
        "HTTP request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
