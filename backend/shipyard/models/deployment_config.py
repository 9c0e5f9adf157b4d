"""
DeploymentConfig model: one row per deployment, discriminated by source.
"""
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from shipyard.core.database import Base


class DeploymentConfig(Base):
    """
    Immutable description of what a deployment runs.

    Workload columns are populated for GIT and IMAGE sources, helm columns
    for HELM. Use services.deployment.config_types to get a typed variant.
    """

    __tablename__ = "deployment_configs"
    __table_args__ = (
        CheckConstraint(
            "(source = 'HELM' AND app_type = 'helm' AND helm_url IS NOT NULL AND image_tag IS NULL)"
            " OR (source = 'IMAGE' AND app_type = 'workload' AND image_tag IS NOT NULL AND helm_url IS NULL)"
            " OR (source = 'GIT' AND app_type = 'workload' AND repository_id IS NOT NULL AND helm_url IS NULL)",
            name="ck_deployment_configs_variant",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    app_type = Column(String(20), nullable=False)  # 'workload', 'helm'
    source = Column(String(10), nullable=False)  # 'GIT', 'IMAGE', 'HELM'

    # Workload
    env_ciphertext = Column(Text, nullable=True)
    image_tag = Column(String(500), nullable=True)
    port = Column(Integer, nullable=True)
    replicas = Column(Integer, nullable=True)
    mounts = Column(JSONB, nullable=True)
    requests = Column(JSONB, nullable=True)
    limits = Column(JSONB, nullable=True)
    post_start = Column(Text, nullable=True)
    pre_stop = Column(Text, nullable=True)
    collect_logs = Column(Boolean, nullable=True)
    create_ingress = Column(Boolean, nullable=True)
    subdomain = Column(String(63), nullable=True)

    # Git
    repository_id = Column(Integer, nullable=True, index=True)
    branch = Column(String(255), nullable=True)
    event = Column(String(20), nullable=True)  # 'push', 'workflow_run'
    event_id = Column(Integer, nullable=True)
    commit_hash = Column(String(64), nullable=True)
    builder = Column(String(20), nullable=True)  # 'dockerfile', 'railpack'
    root_dir = Column(String(500), nullable=True)
    dockerfile_path = Column(String(500), nullable=True)

    # Helm
    helm_url = Column(String(1000), nullable=True)
    helm_url_type = Column(String(10), nullable=True)  # 'absolute', 'oci'
    helm_version = Column(String(100), nullable=True)
    helm_values = Column(JSONB, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
