"""
Repository for deployment log lines.
"""
from typing import List, Optional

from sqlalchemy import select

from shipyard.models.deployment_log import DeploymentLog, LogStream, LogType
from shipyard.repositories.base import BaseRepository


class DeploymentLogRepository(BaseRepository[DeploymentLog]):
    """Repository for DeploymentLog rows."""

    model = DeploymentLog

    async def append(
        self,
        deployment_id: int,
        content: str,
        stream: str = LogStream.STDOUT.value,
        type: str = LogType.BUILD.value,
        pod_name: Optional[str] = None,
    ) -> DeploymentLog:
        return await self.create(DeploymentLog(
            deployment_id=deployment_id,
            content=content,
            stream=stream,
            type=type,
            pod_name=pod_name,
        ))

    async def list_for_deployment(
        self,
        deployment_id: int,
        type: Optional[str] = None,
        after_id: int = 0,
        limit: int = 500,
    ) -> List[DeploymentLog]:
        """Return log lines in order, starting after a cursor."""
        query = select(DeploymentLog).where(
            DeploymentLog.deployment_id == deployment_id,
            DeploymentLog.id > after_id,
        )
        if type:
            query = query.where(DeploymentLog.type == type)
        result = await self.db.execute(query.order_by(DeploymentLog.id).limit(limit))
        return list(result.scalars().all())
