"""
Pydantic schemas for Deployment.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from shipyard.models.deployment import DeploymentStatus
from shipyard.services.deployment.config_types import (
    EnvVar,
    GitConfig,
    HelmConfig,
    ImageConfig,
    VolumeMount,
    WorkloadSettings,
)


class StatusReport(BaseModel):
    """Callback body sent by build and deployer containers."""
    secret: str = Field(..., min_length=1)
    status: str


class EnvVarSchema(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    value: str


class MountSchema(BaseModel):
    path: str = Field(..., min_length=1)
    amount_in_mib: int = Field(..., gt=0)


class WorkloadSchema(BaseModel):
    """Runtime parameters shared by Git and image deployments."""
    port: int = Field(..., ge=1, le=65535)
    replicas: int = Field(default=1, ge=0)
    env: List[EnvVarSchema] = Field(default_factory=list)
    mounts: List[MountSchema] = Field(default_factory=list)
    requests: Dict[str, str] = Field(default_factory=dict)
    limits: Dict[str, str] = Field(default_factory=dict)
    post_start: Optional[str] = None
    pre_stop: Optional[str] = None
    collect_logs: bool = False
    create_ingress: bool = False
    subdomain: Optional[str] = Field(None, max_length=63)

    def to_settings(self) -> WorkloadSettings:
        return WorkloadSettings(
            port=self.port,
            replicas=self.replicas,
            env=tuple(EnvVar(e.name, e.value) for e in self.env),
            mounts=tuple(VolumeMount(m.path, m.amount_in_mib) for m in self.mounts),
            requests=dict(self.requests),
            limits=dict(self.limits),
            post_start=self.post_start,
            pre_stop=self.pre_stop,
            collect_logs=self.collect_logs,
            create_ingress=self.create_ingress,
            subdomain=self.subdomain,
        )


class GitConfigCreate(WorkloadSchema):
    source: Literal["GIT"] = "GIT"
    repository_id: int
    branch: str
    commit_hash: str = Field(..., min_length=7, max_length=40)
    builder: Literal["dockerfile", "railpack"] = "railpack"
    root_dir: str = "."
    dockerfile_path: Optional[str] = None
    event: Literal["push", "workflow_run"] = "push"
    event_id: Optional[int] = None

    def to_config(self) -> GitConfig:
        return GitConfig(
            workload=self.to_settings(),
            repository_id=self.repository_id,
            branch=self.branch,
            commit_hash=self.commit_hash,
            builder=self.builder,
            root_dir=self.root_dir,
            dockerfile_path=self.dockerfile_path,
            event=self.event,
            event_id=self.event_id,
        )


class ImageConfigCreate(WorkloadSchema):
    source: Literal["IMAGE"] = "IMAGE"
    image_tag: str = Field(..., min_length=1)

    def to_config(self) -> ImageConfig:
        return ImageConfig(workload=self.to_settings(), image_tag=self.image_tag)


class HelmConfigCreate(BaseModel):
    source: Literal["HELM"] = "HELM"
    url: str = Field(..., min_length=1)
    url_type: Literal["absolute", "oci"] = "absolute"
    version: Optional[str] = None
    values: Dict[str, Any] = Field(default_factory=dict)

    def to_config(self) -> HelmConfig:
        return HelmConfig(
            url=self.url,
            url_type=self.url_type,
            version=self.version,
            values=dict(self.values),
        )


DeploymentConfigCreate = Union[GitConfigCreate, ImageConfigCreate, HelmConfigCreate]


class DeploymentCreate(BaseModel):
    """Schema for deploying an app with a new config."""
    config: DeploymentConfigCreate = Field(..., discriminator="source")
    commit_message: Optional[str] = None


class DeploymentResponse(BaseModel):
    """Schema for Deployment response."""
    id: int
    app_id: int
    config_id: int
    status: DeploymentStatus
    source: str
    commit_message: Optional[str] = None
    workflow_run_id: Optional[int] = None
    check_run_id: Optional[int] = None
    image_tag: Optional[str] = None
    commit_hash: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_deployment(cls, deployment) -> "DeploymentResponse":
        """Convert a Deployment ORM instance to response schema."""
        config = deployment.config
        return cls(
            id=deployment.id,
            app_id=deployment.app_id,
            config_id=deployment.config_id,
            status=deployment.status,
            source=config.source,
            commit_message=deployment.commit_message,
            workflow_run_id=deployment.workflow_run_id,
            check_run_id=deployment.check_run_id,
            image_tag=config.image_tag,
            commit_hash=config.commit_hash,
            created_at=deployment.created_at,
            updated_at=deployment.updated_at,
        )


class DeploymentLogResponse(BaseModel):
    id: int
    type: str
    stream: str
    content: str
    pod_name: Optional[str] = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)


class DeploymentLogsResponse(BaseModel):
    """A page of log lines; pass `next_cursor` as `after` to continue."""
    deployment_id: int
    logs: List[DeploymentLogResponse]
    next_cursor: int


class AppDeletedResponse(BaseModel):
    app_id: int
    namespace_deleted: bool
    app_group_deleted: bool
