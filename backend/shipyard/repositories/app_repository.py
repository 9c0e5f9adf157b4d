"""
Repository for apps and their tenancy containers.
"""
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import joinedload

from shipyard.core.exceptions import AppNotFoundError
from shipyard.models.app import App
from shipyard.models.deployment_config import DeploymentConfig
from shipyard.models.organization import AppGroup, Organization
from shipyard.repositories.base import BaseRepository


class AppRepository(BaseRepository[App]):
    """Repository for App database operations."""

    model = App

    async def get_by_id_or_raise(self, id: int) -> App:
        """Get an app with its group, organization and current config."""
        result = await self.db.execute(
            select(App)
            .options(
                joinedload(App.app_group),
                joinedload(App.organization),
                joinedload(App.config),
            )
            .where(App.id == id)
        )
        app = result.unique().scalar_one_or_none()
        if not app:
            raise AppNotFoundError(str(id))
        return app

    async def set_config(self, app_id: int, config_id: int) -> App:
        """Advance the app's current config pointer."""
        app = await self.get_by_id_or_raise(app_id)
        app.config_id = config_id
        await self.db.commit()
        return app

    async def list_connected(
        self,
        repository_id: int,
        branch: str,
        event: str,
        event_id: Optional[int] = None,
    ) -> List[App]:
        """
        Apps with continuous deployment enabled whose current config builds
        from the given repository, branch and trigger event.
        """
        conditions = [
            App.enable_cd.is_(True),
            DeploymentConfig.source == "GIT",
            DeploymentConfig.repository_id == repository_id,
            DeploymentConfig.branch == branch,
            DeploymentConfig.event == event,
            Organization.github_installation_id.is_not(None),
        ]
        if event_id is not None:
            conditions.append(DeploymentConfig.event_id == event_id)

        result = await self.db.execute(
            select(App)
            .join(DeploymentConfig, App.config_id == DeploymentConfig.id)
            .join(Organization, App.org_id == Organization.id)
            .options(
                joinedload(App.app_group),
                joinedload(App.organization),
                joinedload(App.config),
            )
            .where(*conditions)
            .order_by(App.id)
        )
        return list(result.unique().scalars().all())

    async def unlink_installation(self, installation_id: int) -> int:
        """Detach an uninstalled GitHub App from every organization using it."""
        result = await self.db.execute(
            update(Organization)
            .where(Organization.github_installation_id == installation_id)
            .values(github_installation_id=None)
        )
        await self.db.commit()
        return result.rowcount

    async def delete_app(self, app: App) -> bool:
        """
        Delete an app; its deployments cascade. The app group goes too once
        it has no apps left.

        Returns:
            True if the app group was deleted as well
        """
        group_id = app.app_group_id
        await self.db.delete(app)
        await self.db.flush()

        remaining = (await self.db.execute(
            select(func.count(App.id)).where(App.app_group_id == group_id)
        )).scalar_one()
        group_deleted = False
        if remaining == 0:
            group = (await self.db.execute(
                select(AppGroup).where(AppGroup.id == group_id)
            )).scalar_one_or_none()
            if group:
                await self.db.delete(group)
                group_deleted = True

        await self.db.commit()
        return group_deleted
