"""
App teardown: removes an app's builds, cluster namespace, image repository
and database rows.
"""
import logging
from dataclasses import dataclass, replace
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from shipyard.core.best_effort import best_effort
from shipyard.core.crypto import EnvCipher, get_env_cipher
from shipyard.models.app import App
from shipyard.repositories.app_repository import AppRepository
from shipyard.repositories.deployment_repository import DeploymentRepository
from shipyard.services.build.scheduler import BuildScheduler
from shipyard.services.cluster import applier
from shipyard.services.cluster.client import ClusterClient
from shipyard.services.cluster.synthesizer import SynthesisOptions, synthesize
from shipyard.services.deployment.config_types import GitConfig, ImageConfig, config_from_row
from shipyard.services.registry.client import RegistryClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TeardownResult:
    app_id: int
    namespace_deleted: bool
    app_group_deleted: bool


class AppTeardownService:
    """
    Deletes apps.

    Cluster and registry cleanup is best-effort: the app row is deleted even
    if the namespace or image repository could not be removed.
    """

    def __init__(
        self,
        db: AsyncSession,
        cluster: ClusterClient,
        registry: Optional[RegistryClient] = None,
        scheduler: Optional[BuildScheduler] = None,
        cipher: Optional[EnvCipher] = None,
        options: Optional[SynthesisOptions] = None,
    ):
        self.db = db
        self.cluster = cluster
        self.registry = registry or RegistryClient()
        self.scheduler = scheduler or BuildScheduler(db, cluster)
        self._cipher = cipher
        self._options = options
        self.app_repo = AppRepository(db)
        self.deployment_repo = DeploymentRepository(db)

    async def delete_app(self, app_id: int, keep_namespace: bool = False) -> TeardownResult:
        """
        Raises:
            AppNotFoundError: If the app does not exist
        """
        app = await self.app_repo.get_by_id_or_raise(app_id)
        logger.info(f"Deleting app {app.id} ({app.name})")

        await self.scheduler.cancel_all_for_app(app.id)

        namespace_deleted = False
        if not keep_namespace:
            namespace_deleted = bool(await best_effort(
                f"delete namespace {app.namespace}",
                self.cluster.delete("v1", "Namespace", app.namespace),
            ))
        else:
            await best_effort(
                f"disable log shipping in {app.namespace}",
                self._disable_log_shipping(app),
            )

        if app.image_repo:
            await best_effort(
                f"delete image repository {app.image_repo}",
                self.registry.delete_repository(app.image_repo),
            )

        app_group_deleted = await self.app_repo.delete_app(app)
        logger.info(f"Deleted app {app_id}")
        return TeardownResult(
            app_id=app_id,
            namespace_deleted=namespace_deleted,
            app_group_deleted=app_group_deleted,
        )

    async def _disable_log_shipping(self, app: App) -> None:
        """Re-apply the latest deployment without log forwarding."""
        deployments, _ = await self.deployment_repo.list_for_app(app.id, page=1, size=1)
        if not deployments:
            return
        latest = deployments[0]
        config = config_from_row(latest.config, self._cipher or get_env_cipher())
        if not isinstance(config, (GitConfig, ImageConfig)) or not config.workload.collect_logs:
            return
        if not config.image_tag:
            return

        config = replace(config, workload=replace(config.workload, collect_logs=False))
        synthesized = synthesize(
            app, app.app_group, latest, config, self._options or SynthesisOptions.from_settings()
        )
        await applier.apply(self.cluster, synthesized)
