"""
Deployment orchestration service.

Coordinates between:
- DeploymentRepository / AppRepository for persistence
- BuildScheduler for Git builds
- the resource synthesizer and applier for workload deploys
- the Helm deployer Job for charts
- CheckRunBridge for mirroring progress onto commits
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from shipyard.core.config import settings
from shipyard.core.crypto import EnvCipher, get_env_cipher
from shipyard.core.events import DeploymentCreatedEvent, event_dispatcher
from shipyard.core.exceptions import (
    BuildDispatchError,
    DeploymentError,
    DeploymentNotFoundError,
    InstallationNotFoundError,
    InvalidConfigurationError,
    InvalidStatusReportError,
)
from shipyard.core.security import generate_deployment_secret
from shipyard.models.app import App
from shipyard.models.deployment import (
    INACTIVE_STATUSES,
    Deployment,
    DeploymentStatus,
)
from shipyard.models.organization import Organization
from shipyard.repositories.app_repository import AppRepository
from shipyard.repositories.deployment_repository import DeploymentRepository
from shipyard.services.build.job_spec import BuildRequest
from shipyard.services.build.scheduler import BuildScheduler
from shipyard.services.cluster import applier
from shipyard.services.cluster.client import ClusterClient
from shipyard.services.cluster.synthesizer import SynthesisOptions, synthesize
from shipyard.services.deployment.check_runs import CheckRunBridge
from shipyard.services.deployment.config_types import (
    SOURCE_GIT,
    SOURCE_HELM,
    SOURCE_IMAGE,
    DeploymentConfigVariant,
    GitConfig,
    HelmConfig,
    ImageConfig,
    WorkloadConfig,
    config_from_row,
    config_to_row,
    with_image_tag,
)
from shipyard.services.deployment.helm import start_helm_deployment
from shipyard.services.deployment.log_writer import DeploymentLogWriter
from shipyard.services.deployment.transitions import set_status
from shipyard.services.git import provider as git

logger = logging.getLogger(__name__)

# Statuses a build or deploy container may report, per config source
REPORTABLE_STATUSES = {
    SOURCE_GIT: {
        DeploymentStatus.BUILDING.value,
        DeploymentStatus.DEPLOYING.value,
        DeploymentStatus.ERROR.value,
    },
    SOURCE_HELM: {
        DeploymentStatus.DEPLOYING.value,
        DeploymentStatus.COMPLETE.value,
        DeploymentStatus.ERROR.value,
    },
}

# Deployments still able to make progress
PROGRESSING_STATUSES = (
    DeploymentStatus.QUEUED.value,
    DeploymentStatus.PENDING.value,
    DeploymentStatus.BUILDING.value,
    DeploymentStatus.DEPLOYING.value,
)


@dataclass(frozen=True)
class GitOptions:
    """
    How a Git deployment proceeds after it is persisted.

    pending_check_run: wait for a CI workflow; only a queued check run is made
    check_run: build now and mirror progress onto a check run
    skip_build: the config already carries a built image; deploy it directly
    """

    pending_check_run: bool = False
    check_run: bool = False
    skip_build: bool = False


def image_tag_for(image_repo: str, commit_hash: str) -> str:
    return f"{settings.REGISTRY_HOSTNAME}/{settings.REGISTRY_PROJECT}/{image_repo}:{commit_hash}"


def cache_tag_for(image_repo: str) -> str:
    return f"{settings.REGISTRY_HOSTNAME}/{settings.REGISTRY_PROJECT}/{image_repo}:build-cache"


def details_url(app_id: int, deployment_id: int) -> str:
    return f"{settings.BASE_URL}/app/{app_id}/deployment/{deployment_id}"


class DeploymentService:
    """
    Drives deployments through their lifecycle.

    Args:
        db: Database session
        cluster: Cluster client
        git_provider_factory: Returns the Git provider for an organization
        log_writer: Deployment log stream
        cipher: Env var cipher, defaults to the configured one
        options: Synthesis settings, defaults to the configured ones
    """

    def __init__(
        self,
        db: AsyncSession,
        cluster: ClusterClient,
        git_provider_factory: Callable[[Organization], git.GitProvider] = git.get_git_provider,
        log_writer: Optional[DeploymentLogWriter] = None,
        cipher: Optional[EnvCipher] = None,
        options: Optional[SynthesisOptions] = None,
        scheduler: Optional[BuildScheduler] = None,
    ):
        self.db = db
        self.cluster = cluster
        self.git_provider_factory = git_provider_factory
        self.log_writer = log_writer or DeploymentLogWriter()
        self._cipher = cipher
        self.options = options or SynthesisOptions.from_settings()
        self.scheduler = scheduler or BuildScheduler(db, cluster, log_writer=self.log_writer)
        self.deployment_repo = DeploymentRepository(db)
        self.app_repo = AppRepository(db)

    @property
    def cipher(self) -> EnvCipher:
        if self._cipher is None:
            self._cipher = get_env_cipher()
        return self._cipher

    def _check_runs(self, org: Organization) -> CheckRunBridge:
        try:
            return CheckRunBridge(self.git_provider_factory(org))
        except InstallationNotFoundError:
            logger.warning(f"Organization {org.id} has no Git installation; skipping check runs")
            return CheckRunBridge(None)

    # =========================================================================
    # Creation
    # =========================================================================

    async def create(
        self,
        org: Organization,
        app: App,
        config: DeploymentConfigVariant,
        commit_message: Optional[str] = None,
        workflow_run_id: Optional[int] = None,
        git: Optional[GitOptions] = None,
    ) -> Deployment:
        """
        Persist a deployment and start it.

        Raises:
            ConflictError: If the workflow run already has a deployment
            DeploymentError: If the build could not be dispatched or the
                deploy failed; the deployment is left in ERROR
        """
        if isinstance(config, GitConfig) and not config.image_tag:
            config = with_image_tag(config, image_tag_for(app.image_repo, config.commit_hash))

        deployment = await self.deployment_repo.create_deployment(
            app_id=app.id,
            config=config_to_row(config, self.cipher),
            secret=generate_deployment_secret(),
            commit_message=commit_message,
            workflow_run_id=workflow_run_id,
        )
        logger.info(f"Created deployment {deployment.id} for app {app.id} ({config.source})")
        await event_dispatcher.dispatch_async(DeploymentCreatedEvent(
            deployment_id=deployment.id, app_id=app.id, source=config.source,
        ))

        if not app.config_id:
            await self.app_repo.set_config(app.id, deployment.config_id)
            app.config_id = deployment.config_id

        if isinstance(config, HelmConfig):
            await self._deploy_helm(org, app, deployment, config)
        elif isinstance(config, ImageConfig):
            await self._deploy_workload(org, app, deployment, config)
        elif isinstance(config, GitConfig):
            await self._handle_git(org, app, deployment, config, git or GitOptions())
        else:
            raise TypeError(f"Unsupported config variant: {type(config).__name__}")
        return deployment

    async def _handle_git(
        self,
        org: Organization,
        app: App,
        deployment: Deployment,
        config: GitConfig,
        opts: GitOptions,
    ) -> None:
        if opts.pending_check_run:
            await self._create_pending_check_run(org, app, deployment, config)
        elif opts.skip_build:
            await self._deploy_workload(org, app, deployment, config)
        else:
            await self._build(org, app, deployment, config, update_check_run=opts.check_run)

    async def _create_pending_check_run(
        self,
        org: Organization,
        app: App,
        deployment: Deployment,
        config: GitConfig,
    ) -> None:
        """Wait for a CI workflow; the deployment stays PENDING."""
        check_run_id = await self._check_runs(org).create(
            config.repository_id, config.commit_hash, git.QUEUED, details_url(app.id, deployment.id)
        )
        if check_run_id:
            await self.deployment_repo.set_check_run_id(deployment.id, check_run_id)
            await self.log_writer.log(deployment.id, "Created check run with status Queued")
        await self.cancel_superseded(org, app, deployment.id, include_complete=False)

    async def _build(
        self,
        org: Organization,
        app: App,
        deployment: Deployment,
        config: GitConfig,
        update_check_run: bool,
    ) -> None:
        """
        Submit the build; the deployment becomes BUILDING or QUEUED.

        Raises:
            DeploymentError: If the build could not be dispatched
        """
        await self.cancel_superseded(org, app, deployment.id, include_complete=True)

        check_runs = self._check_runs(org) if update_check_run else CheckRunBridge(None)
        check_run_id = deployment.check_run_id
        if update_check_run:
            if check_run_id:
                await check_runs.update(config.repository_id, check_run_id, git.IN_PROGRESS)
                await self.log_writer.log(deployment.id, "Updated check run to In Progress")
            else:
                check_run_id = await check_runs.create(
                    config.repository_id,
                    config.commit_hash,
                    git.IN_PROGRESS,
                    details_url(app.id, deployment.id),
                )
                if check_run_id:
                    await self.deployment_repo.set_check_run_id(deployment.id, check_run_id)
                    await self.log_writer.log(deployment.id, "Created check run with status In Progress")

        try:
            clone_url = await self.git_provider_factory(org).clone_url(config.repository_id)
            await self.scheduler.submit(BuildRequest(
                app_id=app.id,
                deployment_id=deployment.id,
                tag=f"{app.id}-{deployment.id}",
                ref=config.commit_hash,
                clone_url=clone_url,
                image_tag=config.image_tag,
                image_cache_tag=cache_tag_for(app.image_repo),
                deployment_secret=deployment.secret,
                builder=config.builder,
                root_dir=config.root_dir,
                dockerfile_path=config.dockerfile_path,
            ))
        except Exception as e:
            reason = e.message if isinstance(e, BuildDispatchError) else str(e)
            await set_status(self.deployment_repo, deployment.id, DeploymentStatus.ERROR.value)
            await self.log_writer.error(deployment.id, f"Error creating build job: {reason}")
            await check_runs.update(config.repository_id, check_run_id, git.FAILURE)
            raise DeploymentError(deployment.id, reason)

    async def _apply_workload(
        self,
        app: App,
        deployment: Deployment,
        config: WorkloadConfig,
    ) -> None:
        """
        Synthesize and apply the app; COMPLETE on success, ERROR on failure.

        Raises:
            DeploymentError: If applying failed
        """
        try:
            synthesized = synthesize(app, app.app_group, deployment, config, self.options)
            await applier.apply(self.cluster, synthesized)
        except Exception as e:
            logger.error(f"Failed to apply resources for deployment {deployment.id}: {e}")
            await set_status(self.deployment_repo, deployment.id, DeploymentStatus.ERROR.value)
            await self.log_writer.error(deployment.id, f"Failed to apply Kubernetes resources: {e}")
            raise DeploymentError(deployment.id, str(e))

        # A newer deployment may have stopped this one while resources were applied
        status = await self.deployment_repo.get_status(deployment.id)
        if status != DeploymentStatus.DEPLOYING.value:
            logger.info(f"Deployment {deployment.id} became {status} during apply, keeping current config")
            return

        await self.log_writer.log(deployment.id, "Deployment succeeded")
        await set_status(self.deployment_repo, deployment.id, DeploymentStatus.COMPLETE.value)
        await self.app_repo.set_config(app.id, deployment.config_id)

    async def _deploy_workload(
        self,
        org: Organization,
        app: App,
        deployment: Deployment,
        config: WorkloadConfig,
    ) -> None:
        await self.cancel_superseded(org, app, deployment.id, include_complete=True)
        await set_status(self.deployment_repo, deployment.id, DeploymentStatus.DEPLOYING.value)
        await self.log_writer.log(deployment.id, "Deploying directly from image...")
        await self._apply_workload(app, deployment, config)

    async def _deploy_helm(
        self,
        org: Organization,
        app: App,
        deployment: Deployment,
        config: HelmConfig,
    ) -> None:
        """
        Start the chart install; the deployer Job reports the outcome.

        Raises:
            DeploymentError: If the deployer Job could not be created
        """
        await self.cancel_superseded(org, app, deployment.id, include_complete=True)
        await set_status(self.deployment_repo, deployment.id, DeploymentStatus.DEPLOYING.value)
        await self.log_writer.log(deployment.id, "Deploying from Helm chart...")
        try:
            await start_helm_deployment(self.cluster, app, deployment, config)
        except Exception as e:
            logger.error(f"Failed to start helm deployment {deployment.id}: {e}")
            await set_status(self.deployment_repo, deployment.id, DeploymentStatus.ERROR.value)
            await self.log_writer.error(deployment.id, f"Failed to create Helm deployment job: {e}")
            raise DeploymentError(deployment.id, str(e))

    # =========================================================================
    # Workflow runs and callbacks
    # =========================================================================

    async def complete_workflow(
        self,
        org: Organization,
        app: App,
        workflow_run_id: int,
        conclusion: Optional[str],
    ) -> Optional[Deployment]:
        """
        Continue or cancel the deployment waiting on a CI workflow run.

        Returns:
            The deployment, or None if no deployment is waiting on the run
        """
        deployment = await self.deployment_repo.get_by_workflow_run(app.id, workflow_run_id)
        if deployment is None or deployment.status != DeploymentStatus.PENDING.value:
            # Deleted, or already superseded and cancelled
            return None

        config = config_from_row(deployment.config, self.cipher)
        if not isinstance(config, GitConfig):
            raise InvalidConfigurationError("source", f"Deployment {deployment.id} is not a Git deployment")

        if conclusion != "success":
            await self.log_writer.log(deployment.id, "Workflow run did not complete successfully")
            await self._check_runs(org).update(config.repository_id, deployment.check_run_id, git.CANCELLED)
            await set_status(self.deployment_repo, deployment.id, DeploymentStatus.CANCELLED.value)
            return deployment

        await self._build(org, app, deployment, config, update_check_run=True)
        return deployment

    async def report(self, secret: str, status: str) -> Deployment:
        """
        Handle a status report from a build or deployer container.

        Raises:
            DeploymentNotFoundError: If no deployment has this secret
            InvalidStatusReportError: If the status is not allowed for the
                deployment's source or the deployment has already finished
        """
        if not secret:
            raise DeploymentNotFoundError()
        deployment = await self.deployment_repo.get_by_secret(secret)
        if deployment is None:
            raise DeploymentNotFoundError()

        source = deployment.config.source
        if source == SOURCE_IMAGE:
            raise InvalidStatusReportError(deployment.id, status, "Image deployments do not accept reports")
        if source not in REPORTABLE_STATUSES:
            raise InvalidStatusReportError(deployment.id, status, f"Unknown source {source}")
        if status not in REPORTABLE_STATUSES[source]:
            raise InvalidStatusReportError(deployment.id, status, "Invalid status")
        if deployment.status in INACTIVE_STATUSES:
            raise InvalidStatusReportError(
                deployment.id, status, f"Deployment is already {deployment.status}"
            )

        await set_status(self.deployment_repo, deployment.id, status)
        await self.log_writer.log(deployment.id, f"Deployment status has been updated to {status}")
        if status == DeploymentStatus.ERROR.value:
            await self.log_writer.error(deployment.id, "Reported failure")

        if source == SOURCE_HELM:
            if status == DeploymentStatus.COMPLETE.value:
                await self.app_repo.set_config(deployment.app_id, deployment.config_id)
            return deployment

        app = await self.app_repo.get_by_id_or_raise(deployment.app_id)
        config = config_from_row(deployment.config, self.cipher)

        if status in (DeploymentStatus.DEPLOYING.value, DeploymentStatus.ERROR.value):
            conclusion = git.SUCCESS if status == DeploymentStatus.DEPLOYING.value else git.FAILURE
            await self._check_runs(app.organization).update(
                config.repository_id, deployment.check_run_id, conclusion
            )

        if status == DeploymentStatus.DEPLOYING.value:
            try:
                await self._apply_workload(app, deployment, config)
            except DeploymentError:
                # Already recorded as ERROR with its log line
                pass
        return deployment

    async def redeploy(self, app_id: int) -> Deployment:
        """
        Deploy the app's current config again as a new deployment.

        Raises:
            AppNotFoundError: If the app does not exist
            InvalidConfigurationError: If the app has never been deployed
        """
        app = await self.app_repo.get_by_id_or_raise(app_id)
        if app.config is None:
            raise InvalidConfigurationError("config", f"App {app_id} has no current config")

        config = config_from_row(app.config, self.cipher)
        opts = None
        if isinstance(config, GitConfig):
            # A config only becomes current once its image exists
            opts = GitOptions(skip_build=bool(config.image_tag))
        return await self.create(
            app.organization, app, config, commit_message="Redeploy", git=opts
        )

    # =========================================================================
    # Cancellation
    # =========================================================================

    async def cancel_superseded(
        self,
        org: Organization,
        app: App,
        current_id: int,
        include_complete: bool,
    ) -> None:
        """
        Stop every other progressing deployment of the app.

        Build Jobs and queue rows are removed; open check runs are closed as
        cancelled. COMPLETE deployments are stopped too when asked.
        """
        await self.scheduler.cancel_all_for_app(app.id)

        statuses = list(PROGRESSING_STATUSES)
        if include_complete:
            statuses.append(DeploymentStatus.COMPLETE.value)
        others = [
            d for d in await self.deployment_repo.list_for_app_with_statuses(app.id, statuses)
            if d.id != current_id
        ]
        if not others:
            return

        check_runs = None
        for other in others:
            if other.check_run_id and other.config.source == SOURCE_GIT:
                check_runs = check_runs or self._check_runs(org)
                await check_runs.update(other.config.repository_id, other.check_run_id, git.CANCELLED)
            await set_status(self.deployment_repo, other.id, DeploymentStatus.STOPPED.value)
            logger.info(f"Stopped deployment {other.id}, superseded by {current_id}")
