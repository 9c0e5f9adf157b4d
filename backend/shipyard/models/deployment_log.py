"""
DeploymentLog model: build and runtime log lines shown to users.
"""
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from shipyard.core.database import Base


class LogType(str, Enum):
    BUILD = "BUILD"
    RUNTIME = "RUNTIME"


class LogStream(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


class DeploymentLog(Base):
    __tablename__ = "deployment_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    deployment_id = Column(Integer, ForeignKey("deployments.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(10), nullable=False, default=LogType.BUILD.value)
    stream = Column(String(10), nullable=False, default=LogStream.STDOUT.value)
    content = Column(Text, nullable=False)
    pod_name = Column(String(255), nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)
