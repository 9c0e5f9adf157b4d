"""
Shared FastAPI dependencies for the cluster client and services.
"""
import asyncio
import logging
from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shipyard.core.database import get_db
from shipyard.services.app_teardown import AppTeardownService
from shipyard.services.cluster.client import ClusterClient
from shipyard.services.deployment.state_machine import DeploymentService
from shipyard.services.log_ingest import LogIngestService
from shipyard.services.status.watcher import StatusWatcher
from shipyard.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

_cluster: Optional[ClusterClient] = None
_cluster_lock = asyncio.Lock()


async def get_cluster() -> ClusterClient:
    """Process-wide cluster client, connected on first use."""
    global _cluster
    if _cluster is None:
        async with _cluster_lock:
            if _cluster is None:
                _cluster = await ClusterClient.connect()
    return _cluster


async def close_cluster() -> None:
    global _cluster
    if _cluster is not None:
        await _cluster.close()
        _cluster = None
        logger.info("Closed cluster client")


def get_deployment_service(
    db: AsyncSession = Depends(get_db),
    cluster: ClusterClient = Depends(get_cluster),
) -> DeploymentService:
    return DeploymentService(db, cluster)


def get_webhook_service(
    deployments: DeploymentService = Depends(get_deployment_service),
) -> WebhookService:
    return WebhookService(deployments)


def get_teardown_service(
    db: AsyncSession = Depends(get_db),
    cluster: ClusterClient = Depends(get_cluster),
) -> AppTeardownService:
    return AppTeardownService(db, cluster)


def get_status_watcher(cluster: ClusterClient = Depends(get_cluster)) -> StatusWatcher:
    return StatusWatcher(cluster)


def get_log_ingest_service(db: AsyncSession = Depends(get_db)) -> LogIngestService:
    return LogIngestService(db)
