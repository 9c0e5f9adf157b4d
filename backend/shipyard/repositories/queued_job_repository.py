"""
Repository for the build queue.
"""
from typing import Optional

from sqlalchemy import delete, select, text

from shipyard.models.deployment import Deployment
from shipyard.models.queued_job import QueuedJob
from shipyard.repositories.base import BaseRepository

# Arbitrary constant identifying the build admission advisory lock
BUILD_ADMISSION_LOCK_KEY = 0x5D1B_0001


class QueuedJobRepository(BaseRepository[QueuedJob]):
    """Repository for QueuedJob rows."""

    model = QueuedJob

    async def enqueue_replacing(self, job: QueuedJob, app_id: int) -> QueuedJob:
        """
        Insert a queued build, dropping any row already queued for the app.

        Only the newest build of an app is worth running.
        """
        app_deployments = select(Deployment.id).where(Deployment.app_id == app_id)
        await self.db.execute(
            delete(QueuedJob).where(QueuedJob.deployment_id.in_(app_deployments))
        )
        return await self.create(job)

    async def pop_oldest_locked(self) -> Optional[QueuedJob]:
        """
        Lock the oldest queued row, skipping rows other sessions hold.

        The row stays locked until the caller commits or rolls back; delete
        it with `remove` before committing to claim it.
        """
        result = await self.db.execute(
            select(QueuedJob)
            .order_by(QueuedJob.created_at, QueuedJob.id)
            .with_for_update(skip_locked=True)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def remove(self, job: QueuedJob) -> None:
        """Delete a popped row without committing."""
        await self.db.execute(delete(QueuedJob).where(QueuedJob.id == job.id))

    async def delete_for_app(self, app_id: int) -> int:
        """
        Delete every queued build belonging to an app.

        Returns:
            Number of rows removed
        """
        app_deployments = select(Deployment.id).where(Deployment.app_id == app_id)
        result = await self.db.execute(
            delete(QueuedJob).where(QueuedJob.deployment_id.in_(app_deployments))
        )
        await self.db.commit()
        return result.rowcount or 0

    async def acquire_admission_lock(self) -> None:
        """Take the transaction-scoped build admission lock."""
        await self.db.execute(
            text("SELECT pg_advisory_xact_lock(:key)"),
            {"key": BUILD_ADMISSION_LOCK_KEY},
        )
