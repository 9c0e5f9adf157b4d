"""
Repository for Deployment entity database operations.
"""
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import desc, func, select, update

from shipyard.core.exceptions import DeploymentNotFoundError
from shipyard.models.deployment import Deployment, DeploymentStatus
from shipyard.models.deployment_config import DeploymentConfig
from shipyard.repositories.base import BaseRepository


class DeploymentRepository(BaseRepository[Deployment]):
    """Repository for Deployment database operations."""

    model = Deployment

    async def get_by_id_or_raise(self, id: int) -> Deployment:
        """Get a deployment by ID, raising exception if not found."""
        deployment = await self.get_by_id(id)
        if not deployment:
            raise DeploymentNotFoundError(str(id))
        return deployment

    async def get_status(self, id: int) -> Optional[str]:
        """Read the stored status, bypassing any instance already loaded in the session."""
        result = await self.db.execute(select(Deployment.status).where(Deployment.id == id))
        return result.scalar_one_or_none()

    async def get_by_secret(self, secret: str) -> Optional[Deployment]:
        """Find the single deployment a callback secret belongs to."""
        result = await self.db.execute(
            select(Deployment).where(Deployment.secret == secret)
        )
        return result.scalar_one_or_none()

    async def get_by_workflow_run(self, app_id: int, workflow_run_id: int) -> Optional[Deployment]:
        result = await self.db.execute(
            select(Deployment).where(
                Deployment.app_id == app_id,
                Deployment.workflow_run_id == workflow_run_id,
            )
        )
        return result.scalar_one_or_none()

    async def create_deployment(
        self,
        app_id: int,
        config: DeploymentConfig,
        secret: str,
        commit_message: Optional[str] = None,
        workflow_run_id: Optional[int] = None,
        status: str = DeploymentStatus.PENDING.value,
    ) -> Deployment:
        """
        Persist a deployment together with its config row.

        Raises:
            ConflictError: If the workflow run or secret is already used
        """
        deployment = Deployment(
            app_id=app_id,
            config=config,
            secret=secret,
            commit_message=commit_message,
            workflow_run_id=workflow_run_id,
            status=status,
        )
        self.db.add(config)
        return await self.create(deployment)

    async def update_status(self, deployment_id: int, status: str) -> Tuple[Deployment, str]:
        """
        Update deployment status.

        Returns:
            Tuple of (updated deployment, previous status)

        Raises:
            DeploymentNotFoundError: If deployment not found
        """
        deployment = await self.get_by_id_or_raise(deployment_id)
        old_status = deployment.status
        deployment.status = status
        await self.db.commit()
        return deployment, old_status

    async def set_check_run_id(self, deployment_id: int, check_run_id: int) -> Deployment:
        deployment = await self.get_by_id_or_raise(deployment_id)
        deployment.check_run_id = check_run_id
        await self.db.commit()
        return deployment

    async def list_for_app_with_statuses(
        self,
        app_id: int,
        statuses: Iterable[str],
    ) -> List[Deployment]:
        result = await self.db.execute(
            select(Deployment)
            .where(Deployment.app_id == app_id, Deployment.status.in_(list(statuses)))
            .order_by(Deployment.id)
        )
        return list(result.scalars().all())

    async def list_for_app(
        self,
        app_id: int,
        page: int = 1,
        size: int = 25,
    ) -> Tuple[List[Deployment], int]:
        """List an app's deployments, newest first."""
        total = (await self.db.execute(
            select(func.count(Deployment.id)).where(Deployment.app_id == app_id)
        )).scalar_one()

        result = await self.db.execute(
            select(Deployment)
            .where(Deployment.app_id == app_id)
            .order_by(desc(Deployment.created_at), desc(Deployment.id))
            .offset((page - 1) * size)
            .limit(size)
        )
        return list(result.scalars().all()), total

    async def unlink_repository(self, repository_id: int) -> int:
        """
        Turn every built config from a deleted repository into an image config.

        Configs that never produced an image keep their Git source; they
        cannot become current anymore.

        Returns:
            Number of configs unlinked
        """
        result = await self.db.execute(
            update(DeploymentConfig)
            .where(
                DeploymentConfig.source == "GIT",
                DeploymentConfig.repository_id == repository_id,
                DeploymentConfig.image_tag.is_not(None),
            )
            .values(
                source="IMAGE",
                repository_id=None,
                branch=None,
                event=None,
                event_id=None,
                builder=None,
                root_dir=None,
                dockerfile_path=None,
            )
        )
        await self.db.commit()
        return result.rowcount
