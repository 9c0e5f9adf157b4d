"""
Event handlers for deployment lifecycle events.
"""
import logging

from shipyard.core.events import (
    BuildQueuedEvent,
    DeploymentCreatedEvent,
    DeploymentStatusChangedEvent,
    handles,
)

logger = logging.getLogger(__name__)

# A build slot is released when a build-path deployment leaves BUILDING
SLOT_RELEASING_TRANSITIONS = {
    ("BUILDING", "DEPLOYING"),
    ("BUILDING", "ERROR"),
    ("BUILDING", "STOPPED"),
    ("DEPLOYING", "COMPLETE"),
    ("DEPLOYING", "ERROR"),
}


@handles(DeploymentCreatedEvent)
async def on_deployment_created(event: DeploymentCreatedEvent):
    logger.info(f"Deployment {event.deployment_id} created for app {event.app_id} ({event.source})")


@handles(DeploymentStatusChangedEvent)
async def on_deployment_status_changed(event: DeploymentStatusChangedEvent):
    """
    Drain the build queue whenever a transition frees a build slot.
    """
    logger.info(
        f"Deployment {event.deployment_id} status {event.old_status} -> {event.new_status}"
    )
    if (event.old_status, event.new_status) not in SLOT_RELEASING_TRANSITIONS:
        return

    from shipyard.services.task_dispatcher import task_dispatcher
    task_dispatcher.dispatch_build_queue_drain()


@handles(BuildQueuedEvent)
async def on_build_queued(event: BuildQueuedEvent):
    logger.info(f"Build for deployment {event.deployment_id} (app {event.app_id}) queued")


def register_all_handlers():
    """
    Explicit startup hook. Handlers are registered by the @handles decorator
    when this module is imported.
    """
    logger.info("Event handlers registered")
