"""
QueuedJob model: a build request waiting for a free build slot.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shipyard.core.database import Base


class QueuedJob(Base):
    """Pending build; deleted in the same transaction that dispatches it."""

    __tablename__ = "queued_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tag = Column(String(64), nullable=False)
    ref = Column(String(255), nullable=False)
    clone_url = Column(String(1000), nullable=False)
    image_tag = Column(String(500), nullable=False)
    image_cache_tag = Column(String(500), nullable=False)
    deployment_secret = Column(String(64), nullable=False)
    deployment_id = Column(
        Integer,
        ForeignKey("deployments.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    deployment = relationship("Deployment")
