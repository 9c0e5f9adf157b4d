"""
Deployment model: one attempt to make an app match a config.
"""
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shipyard.core.database import Base


class DeploymentStatus(str, Enum):
    """Lifecycle states of a deployment."""
    QUEUED = "QUEUED"
    PENDING = "PENDING"
    BUILDING = "BUILDING"
    DEPLOYING = "DEPLOYING"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"
    STOPPED = "STOPPED"


TERMINAL_STATUSES = frozenset({
    DeploymentStatus.COMPLETE.value,
    DeploymentStatus.ERROR.value,
    DeploymentStatus.CANCELLED.value,
})

# Statuses from which no callback may move a deployment
INACTIVE_STATUSES = TERMINAL_STATUSES | {DeploymentStatus.STOPPED.value}


class Deployment(Base):
    """Deployment record."""

    __tablename__ = "deployments"
    __table_args__ = (
        UniqueConstraint("app_id", "workflow_run_id", name="uq_deployments_app_workflow_run"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    app_id = Column(Integer, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True)
    config_id = Column(Integer, ForeignKey("deployment_configs.id"), nullable=False, unique=True)
    workflow_run_id = Column(Integer, nullable=True)
    check_run_id = Column(Integer, nullable=True)
    commit_message = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=DeploymentStatus.PENDING.value, index=True)
    secret = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    app = relationship("App", back_populates="deployments")
    config = relationship("DeploymentConfig", lazy="joined")
    logs = relationship("DeploymentLog", cascade="all, delete-orphan", passive_deletes=True)
