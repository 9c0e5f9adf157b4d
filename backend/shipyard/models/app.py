"""
App model: a named workload living in its own namespace.
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shipyard.core.database import Base


class App(Base):
    """Deployable application."""

    __tablename__ = "apps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    app_group_id = Column(Integer, ForeignKey("app_groups.id"), nullable=False, index=True)
    name = Column(String(60), nullable=False)
    display_name = Column(String(255), nullable=False)
    namespace = Column(String(63), nullable=False, unique=True)
    image_repo = Column(String(255), nullable=False)
    log_ingest_secret = Column(String(128), nullable=False)
    # Points at the config of the last successful deployment
    config_id = Column(
        Integer,
        ForeignKey("deployment_configs.id", use_alter=True, name="fk_apps_config_id"),
        nullable=True,
    )
    enable_cd = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    app_group = relationship("AppGroup", back_populates="apps")
    organization = relationship("Organization")
    config = relationship("DeploymentConfig", foreign_keys=[config_id])
    deployments = relationship(
        "Deployment",
        back_populates="app",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
