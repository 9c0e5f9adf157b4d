"""
Deployment log stream writer.

Lines are written in their own session so a failed log insert can never
poison the caller's transaction.
"""
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from shipyard.core.best_effort import best_effort
from shipyard.models.deployment_log import LogStream, LogType
from shipyard.repositories.deployment_log_repository import DeploymentLogRepository


class DeploymentLogWriter:
    """Appends lines to a deployment's log stream."""

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        if session_factory is None:
            from shipyard.core.database import async_session_maker
            session_factory = async_session_maker
        self.session_factory = session_factory

    async def log(
        self,
        deployment_id: int,
        content: str,
        stream: str = LogStream.STDOUT.value,
        type: str = LogType.BUILD.value,
    ) -> None:
        """Append a line; a failed write is logged and dropped."""
        await best_effort(
            f"write log line for deployment {deployment_id}",
            self._append(deployment_id, content, stream, type),
        )

    async def error(self, deployment_id: int, content: str) -> None:
        await self.log(deployment_id, content, stream=LogStream.STDERR.value)

    async def _append(self, deployment_id: int, content: str, stream: str, type: str) -> None:
        async with self.session_factory() as db:
            await DeploymentLogRepository(db).append(deployment_id, content, stream=stream, type=type)
