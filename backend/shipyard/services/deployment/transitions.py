"""
Status transitions shared by the state machine and the build scheduler.
"""
import logging

from shipyard.core.events import DeploymentStatusChangedEvent, event_dispatcher
from shipyard.models.deployment import Deployment
from shipyard.repositories.deployment_repository import DeploymentRepository

logger = logging.getLogger(__name__)


async def set_status(repo: DeploymentRepository, deployment_id: int, status: str) -> Deployment:
    """Persist a new status and announce the change."""
    deployment, old_status = await repo.update_status(deployment_id, status)
    if old_status != status:
        await event_dispatcher.dispatch_async(DeploymentStatusChangedEvent(
            deployment_id=deployment.id,
            app_id=deployment.app_id,
            old_status=old_status,
            new_status=status,
        ))
    return deployment
