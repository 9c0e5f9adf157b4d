"""
Repository layer for database access.
"""
from shipyard.repositories.app_repository import AppRepository
from shipyard.repositories.base import BaseRepository
from shipyard.repositories.deployment_log_repository import DeploymentLogRepository
from shipyard.repositories.deployment_repository import DeploymentRepository
from shipyard.repositories.queued_job_repository import QueuedJobRepository

__all__ = [
    "BaseRepository",
    "AppRepository",
    "DeploymentRepository",
    "DeploymentLogRepository",
    "QueuedJobRepository",
]
