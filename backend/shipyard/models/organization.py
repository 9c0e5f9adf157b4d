"""
Tenancy containers: organizations and app groups.
"""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shipyard.core.database import Base


class Organization(Base):
    """Tenant that owns app groups and a Git provider installation."""

    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    github_installation_id = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    app_groups = relationship("AppGroup", back_populates="organization", cascade="all, delete-orphan")


class AppGroup(Base):
    """Group of apps deployed together; deleted when it becomes empty."""

    __tablename__ = "app_groups"

    id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_mono = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    organization = relationship("Organization", back_populates="app_groups")
    apps = relationship("App", back_populates="app_group")

    @property
    def part_of_label(self) -> str:
        """Value for the app.kubernetes.io/part-of label."""
        return f"{self.name.replace(' ', '_')}-{self.id}-{self.org_id}"
