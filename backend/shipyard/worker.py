"""
Celery tasks for background job execution.

Uses run_async_with_db from async_helpers for clean async/await execution.
"""
import logging

from shipyard.core.async_helpers import run_async_with_db
from shipyard.core.celery_app import celery_app
from shipyard.core.config import settings

logger = logging.getLogger(__name__)


@celery_app.task(acks_late=True, expires=settings.BUILD_QUEUE_POLL_INTERVAL * 4)
def drain_build_queue_task():
    """
    Admit queued builds while build slots are free.

    Safe to run concurrently: each queued row is claimed with SKIP LOCKED.
    """
    from shipyard.services.build.scheduler import BuildScheduler
    from shipyard.services.cluster.client import ClusterClient

    async def drain(db):
        cluster = await ClusterClient.connect()
        try:
            return await BuildScheduler(db, cluster).drain()
        finally:
            await cluster.close()

    admitted = run_async_with_db(drain)
    if admitted:
        logger.info(f"Admitted {admitted} queued build(s)")
    return admitted
