"""
API endpoints for deployments and the status callback used by build and
deployer containers.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from shipyard.api.deps import get_deployment_service
from shipyard.core.database import get_db
from shipyard.core.security import verify_api_key
from shipyard.models.deployment_log import LogType
from shipyard.repositories.deployment_log_repository import DeploymentLogRepository
from shipyard.repositories.deployment_repository import DeploymentRepository
from shipyard.schemas.deployment import (
    DeploymentLogResponse,
    DeploymentLogsResponse,
    DeploymentResponse,
    StatusReport,
)
from shipyard.services.deployment.state_machine import DeploymentService

router = APIRouter()


@router.post("/report", status_code=status.HTTP_204_NO_CONTENT)
async def report_status(
    report: StatusReport,
    service: DeploymentService = Depends(get_deployment_service),
) -> Response:
    """
    Receive a status update from a build or Helm deployer Job.

    The deployment secret in the body authenticates the caller.

    Raises:
        DeploymentNotFoundError: If the secret matches no deployment (404)
        InvalidStatusReportError: If the status is not allowed (400)
    """
    await service.report(report.secret, report.status)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{deployment_id}", response_model=DeploymentResponse)
async def get_deployment(
    deployment_id: int,
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(verify_api_key),
) -> DeploymentResponse:
    """Get a deployment by ID."""
    deployment = await DeploymentRepository(db).get_by_id_or_raise(deployment_id)
    return DeploymentResponse.from_deployment(deployment)


@router.get("/{deployment_id}/logs", response_model=DeploymentLogsResponse)
async def get_deployment_logs(
    deployment_id: int,
    after: int = Query(0, ge=0, description="Return lines after this log id"),
    type: Optional[LogType] = Query(None, description="Filter by log type"),
    limit: int = Query(500, ge=1, le=5000),
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(verify_api_key),
) -> DeploymentLogsResponse:
    """Page through a deployment's build and runtime logs in order."""
    await DeploymentRepository(db).get_by_id_or_raise(deployment_id)
    logs = await DeploymentLogRepository(db).list_for_deployment(
        deployment_id,
        type=type.value if type else None,
        after_id=after,
        limit=limit,
    )
    return DeploymentLogsResponse(
        deployment_id=deployment_id,
        logs=[DeploymentLogResponse.model_validate(log) for log in logs],
        next_cursor=logs[-1].id if logs else after,
    )
