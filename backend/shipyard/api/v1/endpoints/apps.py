"""
API endpoints for an app's deployments, live status and deletion.
"""
import asyncio
import json
import logging
from typing import AsyncIterator, Union

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from shipyard.api.deps import get_deployment_service, get_status_watcher, get_teardown_service
from shipyard.core.database import get_db
from shipyard.core.exceptions import InvalidConfigurationError, StatusWatchError
from shipyard.core.security import verify_api_key
from shipyard.repositories.app_repository import AppRepository
from shipyard.repositories.deployment_repository import DeploymentRepository
from shipyard.schemas.deployment import AppDeletedResponse, DeploymentCreate, DeploymentResponse
from shipyard.schemas.pagination import PaginatedResponse
from shipyard.schemas.status import AppStatus
from shipyard.services.app_teardown import AppTeardownService
from shipyard.services.deployment.config_types import SOURCE_HELM
from shipyard.services.deployment.state_machine import DeploymentService, GitOptions
from shipyard.services.status.watcher import StatusWatcher

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_KEEPALIVE_SECONDS = 15.0


@router.get("/{app_id}/deployments", response_model=PaginatedResponse[DeploymentResponse])
async def list_app_deployments(
    app_id: int,
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(25, ge=1, le=100, description="Page size"),
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(verify_api_key),
) -> PaginatedResponse[DeploymentResponse]:
    """List an app's deployments, newest first (paginated)."""
    await AppRepository(db).get_by_id_or_raise(app_id)
    deployments, total = await DeploymentRepository(db).list_for_app(app_id, page=page, size=size)
    items = [DeploymentResponse.from_deployment(d) for d in deployments]
    return PaginatedResponse.create(items=items, total=total, page=page, size=size)


@router.post(
    "/{app_id}/deployments",
    response_model=DeploymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_app_deployment(
    app_id: int,
    deployment_data: DeploymentCreate,
    db: AsyncSession = Depends(get_db),
    service: DeploymentService = Depends(get_deployment_service),
    api_key: str = Depends(verify_api_key),
) -> DeploymentResponse:
    """
    Deploy an app with a new config.

    Git configs are built first; image and Helm configs deploy directly.

    Raises:
        AppNotFoundError: If the app does not exist (404)
        DeploymentError: If the build or deploy could not be started (500)
    """
    app = await AppRepository(db).get_by_id_or_raise(app_id)
    deployment = await service.create(
        app.organization,
        app,
        deployment_data.config.to_config(),
        commit_message=deployment_data.commit_message,
        git=GitOptions(check_run=True),
    )
    return DeploymentResponse.from_deployment(deployment)


@router.post(
    "/{app_id}/redeploy",
    response_model=DeploymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def redeploy_app(
    app_id: int,
    service: DeploymentService = Depends(get_deployment_service),
    api_key: str = Depends(verify_api_key),
) -> DeploymentResponse:
    """
    Deploy the app's current config again.

    Raises:
        AppNotFoundError: If the app does not exist (404)
        InvalidConfigurationError: If the app was never deployed (400)
    """
    deployment = await service.redeploy(app_id)
    return DeploymentResponse.from_deployment(deployment)


@router.delete("/{app_id}", response_model=AppDeletedResponse)
async def delete_app(
    app_id: int,
    keep_namespace: bool = Query(False, description="Leave the namespace running"),
    service: AppTeardownService = Depends(get_teardown_service),
    api_key: str = Depends(verify_api_key),
) -> AppDeletedResponse:
    """
    Delete an app, its builds and its cluster resources.

    Namespace and image repository removal are best-effort.
    """
    result = await service.delete_app(app_id, keep_namespace=keep_namespace)
    return AppDeletedResponse(
        app_id=result.app_id,
        namespace_deleted=result.namespace_deleted,
        app_group_deleted=result.app_group_deleted,
    )


@router.get("/{app_id}/status")
async def stream_app_status(
    app_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    watcher: StatusWatcher = Depends(get_status_watcher),
    api_key: str = Depends(verify_api_key),
) -> StreamingResponse:
    """
    Stream the app's live status as server-sent events.

    Each `data:` line is an AppStatus document. A failed watch ends the
    stream with an `error` event.

    Raises:
        AppNotFoundError: If the app does not exist (404)
        InvalidConfigurationError: For Helm apps, whose resources are not
            managed here (400)
    """
    app = await AppRepository(db).get_by_id_or_raise(app_id)
    if app.config is not None and app.config.source == SOURCE_HELM:
        raise InvalidConfigurationError("source", "Status is not available for Helm apps")

    updates: "asyncio.Queue[Union[AppStatus, StatusWatchError, None]]" = asyncio.Queue()
    cancel_event = asyncio.Event()

    async def observe() -> None:
        try:
            await watcher.observe(app, updates.put, cancel_event)
        except StatusWatchError as e:
            await updates.put(e)
        finally:
            await updates.put(None)

    async def event_stream() -> AsyncIterator[str]:
        task = asyncio.create_task(observe())
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    item = await asyncio.wait_for(updates.get(), timeout=STATUS_KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                if item is None:
                    break
                if isinstance(item, StatusWatchError):
                    yield f"event: error\ndata: {json.dumps({'detail': item.message})}\n\n"
                    break
                yield f"data: {item.model_dump_json()}\n\n"
        finally:
            cancel_event.set()
            await asyncio.gather(task, return_exceptions=True)
            logger.debug(f"Status stream for app {app.id} closed")

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
