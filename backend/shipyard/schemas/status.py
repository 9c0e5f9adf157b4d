"""
Pydantic schemas for live app status.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class PodStatus(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    deployment_id: Optional[int] = None
    node: Optional[str] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    phase: Optional[str] = None
    scheduled: bool = False
    ready: bool = False
    failed: bool = False
    image: Optional[str] = None
    container_ready: bool = False
    container_state: Dict[str, Any] = Field(default_factory=dict)
    last_state: Dict[str, Any] = Field(default_factory=dict)
    ip: Optional[str] = None


class StatefulSetStatus(BaseModel):
    replicas: int = 0
    ready_replicas: int = 0
    updated_replicas: int = 0
    current_replicas: int = 0
    generation: Optional[int] = None
    observed_generation: Optional[int] = None
    current_revision: Optional[str] = None
    update_revision: Optional[str] = None


class WarningEvent(BaseModel):
    reason: Optional[str] = None
    message: Optional[str] = None
    count: Optional[int] = None
    first_timestamp: Optional[str] = None
    last_timestamp: Optional[str] = None


class AppStatus(BaseModel):
    """Combined view of an app's pods, StatefulSet and recent warnings."""
    total_pods: int = 0
    ready_pods: int = 0
    scheduled_pods: int = 0
    failed_pods: int = 0
    pods: List[PodStatus] = Field(default_factory=list)
    statefulset: Optional[StatefulSetStatus] = None
    events: List[WarningEvent] = Field(default_factory=list)
