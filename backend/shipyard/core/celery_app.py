import logging

from celery import Celery
from celery.signals import worker_ready

from shipyard.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "worker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["shipyard.worker"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    result_expires=3600,
)


@worker_ready.connect
def on_worker_ready(sender, **kwargs):
    """
    Drain the build queue once on worker start so builds queued while the
    worker was down are admitted.
    """
    logger.info("Worker ready - draining build queue")
    try:
        from shipyard.worker import drain_build_queue_task
        drain_build_queue_task.delay()
    except Exception as e:
        logger.error(f"Error during worker startup tasks: {e}")
