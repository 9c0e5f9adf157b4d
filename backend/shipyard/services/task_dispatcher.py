"""
Task dispatcher service for decoupling callers from Celery.

This module provides an abstraction layer between the API and Celery tasks,
making the code testable without requiring a running Celery worker.

Usage:
    from shipyard.services.task_dispatcher import task_dispatcher

    task_dispatcher.dispatch_build_queue_drain()

    # In tests, replace with mock:
    with patch('shipyard.services.task_dispatcher.task_dispatcher') as mock:
        mock.dispatch_build_queue_drain.return_value = "task-id"
        # ... test code
"""
import logging
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class TaskDispatcherProtocol(Protocol):
    """Protocol defining the task dispatcher interface."""

    def dispatch_build_queue_drain(self) -> Optional[str]:
        """Dispatch a drain of the build queue."""
        ...


class CeleryTaskDispatcher:
    """
    Task dispatcher implementation using Celery.

    All Celery imports are deferred to method calls to avoid circular imports.
    """

    def dispatch_build_queue_drain(self) -> Optional[str]:
        """
        Dispatch a task admitting queued builds while slots are free.

        Returns:
            Task ID if dispatched successfully, None otherwise
        """
        try:
            from shipyard.worker import drain_build_queue_task

            result = drain_build_queue_task.delay()
            logger.info(f"Dispatched build queue drain: {result.id}")
            return result.id
        except Exception as e:
            logger.error(f"Failed to dispatch build queue drain: {e}")
            return None


class NoOpTaskDispatcher:
    """
    No-op task dispatcher for testing.
    """

    def dispatch_build_queue_drain(self) -> Optional[str]:
        logger.debug("NoOp: dispatch_build_queue_drain()")
        return "noop-build-queue-drain"


def _create_dispatcher() -> TaskDispatcherProtocol:
    """
    Create the appropriate task dispatcher based on environment.

    Returns CeleryTaskDispatcher for production, NoOpTaskDispatcher for tests.
    """
    import os

    environment = os.getenv("ENVIRONMENT", "production")

    if environment == "test":
        logger.info("Using NoOpTaskDispatcher for test environment")
        return NoOpTaskDispatcher()

    return CeleryTaskDispatcher()


# Singleton instance for shared use
task_dispatcher: TaskDispatcherProtocol = _create_dispatcher()
