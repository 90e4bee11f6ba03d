"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable and delegates to the appropriate job.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from app.config import settings
from app.features.time_inference.services.engine import build_engine
from app.features.time_inference.sources.google_source import GoogleWorkspaceSource
from app.infrastructure.observability.logging import get_logger, setup_logging
from app.services.infrastructure.redis_client import RedisClient

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]


async def _run_engine(continuous: bool) -> None:
    if not settings.GOOGLE_ACCESS_TOKEN:
        raise RuntimeError("GOOGLE_ACCESS_TOKEN is required for the sync worker")

    source = GoogleWorkspaceSource(token_provider=lambda: settings.GOOGLE_ACCESS_TOKEN)
    redis_client = RedisClient(settings.REDIS_URL) if settings.uses_redis() else None
    try:
        if redis_client is not None:
            await redis_client.initialize()
        engine = build_engine(settings, source, redis_client=redis_client)
        await engine.initialize()

        if continuous:
            engine.start_auto_sync()
            await engine.auto_sync.wait()
        else:
            result = await engine.run_sync_once()
            logger.info("One-shot sync finished", **result.model_dump(mode="json"))
    finally:
        await source.close()
        if redis_client is not None:
            await redis_client.close()


async def start_auto_sync_worker() -> None:
    """Run the periodic sync until the process is stopped."""
    await _run_engine(continuous=True)


async def run_sync_once_worker() -> None:
    await _run_engine(continuous=False)


JOB_REGISTRY: dict[str, JobCoroutine] = {
    "auto_sync": start_auto_sync_worker,
    "sync_once": run_sync_once_worker,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "auto_sync").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)
    await JOB_REGISTRY[name]()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(log_level=settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()
