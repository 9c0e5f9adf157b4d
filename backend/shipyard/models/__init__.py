# Models package
from shipyard.models.organization import Organization, AppGroup
from shipyard.models.app import App
from shipyard.models.deployment_config import DeploymentConfig
from shipyard.models.deployment import Deployment, DeploymentStatus
from shipyard.models.queued_job import QueuedJob
from shipyard.models.deployment_log import DeploymentLog, LogType, LogStream
