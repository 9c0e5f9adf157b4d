"""
API v1 router that includes all endpoint routers.
"""
from fastapi import APIRouter

from shipyard.api.v1.endpoints import (
    apps,
    deployments,
    logs,
    webhooks,
)

# Create main API router
api_router = APIRouter()

api_router.include_router(
    apps.router,
    prefix="/apps",
    tags=["apps"],
)

# Also serves the status callback used by build and deployer Jobs
api_router.include_router(
    deployments.router,
    prefix="/deployments",
    tags=["deployments"],
)

api_router.include_router(
    webhooks.router,
    prefix="/webhooks",
    tags=["webhooks"],
)

api_router.include_router(
    logs.router,
    prefix="/logs",
    tags=["logs"],
)
