"""Streaq worker for VOD conversion jobs."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any

from loguru import logger
from streaq import Worker

from app.domain.access.access_domain import AccessService
from app.domain.vod.pipeline import VodPipeline
from app.shared.api.utils import init_logger
from app.shared.storage.mongo import get_mongo_manager
from app.workers.base import QUEUE_KEY, initialize_beanie_for_worker, queue_url

QUEUE_KEY_VOD_JOBS = f"{QUEUE_KEY}:vod-jobs"


@asynccontextmanager
async def vod_lifespan() -> AsyncIterator[None]:
    """Lifespan context manager for the VOD worker."""
    init_logger()
    logger.info("Starting VOD worker")
    await initialize_beanie_for_worker()
    logger.info("VOD worker initialized")

    try:
        yield
    finally:
        get_mongo_manager().close_all()
        logger.info("VOD worker stopped")


worker: Worker[None] = Worker(
    redis_url=queue_url,
    lifespan=vod_lifespan,  # type: ignore[arg-type]
    queue_name=QUEUE_KEY_VOD_JOBS,
)


@worker.task(timeout=timedelta(hours=2))
async def run_vod_conversion(job_id: str) -> dict[str, Any]:
    """Run every stage of a VOD processing job.

    Stage failures are recorded on the VOD; the task itself only fails if the job
    does not exist.
    """
    job = await VodPipeline().run_job(job_id)
    return {"job_id": job.job_id, "vod_id": job.vod_id, "status": str(job.status)}


@worker.cron("*/10 * * * *")
async def cleanup_expired_grants() -> None:
    """Remove access grants whose refresh window is over."""
    result = await AccessService().cleanup_expired_grants()
    if result.deleted:
        logger.info("Expired grant cleanup removed {} grants", result.deleted)
