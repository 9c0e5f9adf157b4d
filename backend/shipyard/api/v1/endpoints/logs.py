"""
Log ingestion endpoint for the cluster logging operator.
"""
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from shipyard.api.deps import get_log_ingest_service
from shipyard.services.log_ingest import LogIngestService

router = APIRouter()

basic_auth = HTTPBasic()


@router.post("/ingest", status_code=status.HTTP_200_OK)
async def ingest_logs(
    request: Request,
    type: str = Query(..., description="build or runtime"),
    app_id: Optional[int] = Query(None, alias="appId"),
    credentials: HTTPBasicCredentials = Depends(basic_auth),
    service: LogIngestService = Depends(get_log_ingest_service),
) -> Dict[str, int]:
    """
    Store a batch of JSON-lines log records.

    Build logs authenticate with the shared build secret, runtime logs with
    the app's own ingest secret.
    """
    body = (await request.body()).decode("utf-8", errors="replace")
    stored = await service.ingest(
        type,
        credentials.username,
        credentials.password,
        body,
        app_id=app_id,
    )
    return {"stored": stored}
