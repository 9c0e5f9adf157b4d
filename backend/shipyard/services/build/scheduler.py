"""
Build scheduler: admits image builds up to a concurrency ceiling and queues
the rest.

Active builds are counted from the cluster itself (Jobs carrying the build
label that have neither succeeded nor failed), so the count survives API
restarts. Queued builds live in the queued_jobs table and are admitted by
`dequeue_next`, which the periodic drain and slot-releasing transitions call.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from shipyard.core.best_effort import best_effort
from shipyard.core.config import settings
from shipyard.core.events import BuildQueuedEvent, event_dispatcher
from shipyard.core.exceptions import BuildDispatchError
from shipyard.models.deployment import DeploymentStatus
from shipyard.models.queued_job import QueuedJob
from shipyard.repositories.deployment_repository import DeploymentRepository
from shipyard.repositories.queued_job_repository import QueuedJobRepository
from shipyard.services.build.job_spec import BuildRequest, build_job_manifest
from shipyard.services.cluster.client import ClusterClient
from shipyard.services.cluster.labels import app_id_label, build_job_label, selector
from shipyard.services.deployment.log_writer import DeploymentLogWriter
from shipyard.services.deployment.transitions import set_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildDispatched:
    job_id: str


@dataclass(frozen=True)
class BuildQueued:
    queued_job_id: int


BuildSubmission = Union[BuildDispatched, BuildQueued]


def is_job_active(job: Dict[str, Any]) -> bool:
    status = job.get("status") or {}
    return not status.get("succeeded") and not status.get("failed")


class BuildScheduler:
    """
    Concurrency-limited build admission.

    Args:
        db: Session used for the queue and deployment status
        cluster: Cluster client creating and listing Jobs
        log_writer: Deployment log stream
        max_concurrent: Build ceiling, defaults to MAX_CONCURRENT_BUILDS
    """

    def __init__(
        self,
        db: AsyncSession,
        cluster: ClusterClient,
        log_writer: Optional[DeploymentLogWriter] = None,
        max_concurrent: Optional[int] = None,
        namespace: Optional[str] = None,
        label_domain: Optional[str] = None,
        strict_admission: Optional[bool] = None,
    ):
        self.db = db
        self.cluster = cluster
        self.log_writer = log_writer or DeploymentLogWriter()
        self.max_concurrent = max_concurrent if max_concurrent is not None else settings.MAX_CONCURRENT_BUILDS
        self.namespace = namespace or settings.BUILD_NAMESPACE
        self.label_domain = label_domain or settings.LABEL_DOMAIN
        self.strict_admission = (
            strict_admission if strict_admission is not None else settings.STRICT_BUILD_ADMISSION
        )
        self.queue_repo = QueuedJobRepository(db)
        self.deployment_repo = DeploymentRepository(db)

    async def active_build_count(self) -> int:
        jobs = await self.cluster.list_jobs(
            self.namespace, label_selector=f"{build_job_label(self.label_domain)}=true"
        )
        return sum(1 for job in jobs if is_job_active(job))

    async def _create_job(self, request: BuildRequest) -> str:
        """
        Raises:
            BuildDispatchError: If the Job could not be created
        """
        try:
            job = await self.cluster.create_job(
                self.namespace, build_job_manifest(request, self.label_domain)
            )
        except Exception as e:
            raise BuildDispatchError(request.deployment_id, str(e))
        job_id = job["metadata"]["uid"]
        logger.info(f"Created build job {job_id} for deployment {request.deployment_id}")
        return job_id

    async def submit(self, request: BuildRequest) -> BuildSubmission:
        """
        Start a build now if a slot is free, otherwise queue it.

        The deployment moves to BUILDING or QUEUED accordingly.

        Raises:
            BuildDispatchError: If a slot was free but the Job could not be created
        """
        if self.strict_admission:
            await self.queue_repo.acquire_admission_lock()

        active = await self.active_build_count()
        if active < self.max_concurrent:
            job_id = await self._create_job(request)
            await set_status(self.deployment_repo, request.deployment_id, DeploymentStatus.BUILDING.value)
            await self.log_writer.log(request.deployment_id, f"Created build job with ID {job_id}")
            return BuildDispatched(job_id=job_id)

        queued = await self.queue_repo.enqueue_replacing(
            QueuedJob(
                tag=request.tag,
                ref=request.ref,
                clone_url=request.clone_url,
                image_tag=request.image_tag,
                image_cache_tag=request.image_cache_tag,
                deployment_secret=request.deployment_secret,
                deployment_id=request.deployment_id,
            ),
            app_id=request.app_id,
        )
        await set_status(self.deployment_repo, request.deployment_id, DeploymentStatus.QUEUED.value)
        logger.info(
            f"Build for deployment {request.deployment_id} queued "
            f"({active}/{self.max_concurrent} builds active)"
        )
        await self.log_writer.log(
            request.deployment_id, "All build slots are busy; build queued"
        )
        await event_dispatcher.dispatch_async(
            BuildQueuedEvent(deployment_id=request.deployment_id, app_id=request.app_id)
        )
        return BuildQueued(queued_job_id=queued.id)

    async def dequeue_next(self) -> Optional[str]:
        """
        Admit the oldest queued build if a slot is free.

        The row is locked with SKIP LOCKED, so concurrent drains never admit
        the same build twice. When the ceiling is still reached the row is
        left untouched.

        Returns:
            The created Job's id, or None if nothing was admitted

        Raises:
            BuildDispatchError: If Job creation failed; the row is gone and
                the deployment is in ERROR
        """
        while True:
            if self.strict_admission:
                await self.queue_repo.acquire_admission_lock()

            job = await self.queue_repo.pop_oldest_locked()
            if job is None:
                await self.db.rollback()
                return None

            if await self.active_build_count() >= self.max_concurrent:
                await self.db.rollback()
                return None

            deployment = await self.deployment_repo.get_by_id(job.deployment_id)
            await self.queue_repo.remove(job)
            if deployment is None or deployment.status != DeploymentStatus.QUEUED.value:
                # Superseded while waiting
                await self.db.commit()
                continue

            config = deployment.config
            request = BuildRequest(
                app_id=deployment.app_id,
                deployment_id=deployment.id,
                tag=job.tag,
                ref=job.ref,
                clone_url=job.clone_url,
                image_tag=job.image_tag,
                image_cache_tag=job.image_cache_tag,
                deployment_secret=job.deployment_secret,
                builder=config.builder or "railpack",
                root_dir=config.root_dir or ".",
                dockerfile_path=config.dockerfile_path,
            )

            try:
                job_id = await self._create_job(request)
            except BuildDispatchError as e:
                await self.db.commit()
                await set_status(self.deployment_repo, deployment.id, DeploymentStatus.ERROR.value)
                await self.log_writer.error(deployment.id, f"Error creating build job: {e.message}")
                raise

            await set_status(self.deployment_repo, deployment.id, DeploymentStatus.BUILDING.value)
            await self.log_writer.log(deployment.id, f"Created build job with ID {job_id}")
            return job_id

    async def drain(self) -> int:
        """
        Admit queued builds until the queue is empty or the ceiling is hit.

        Returns:
            Number of builds admitted
        """
        admitted = 0
        while True:
            try:
                job_id = await self.dequeue_next()
            except BuildDispatchError as e:
                logger.error(f"Queued build could not be dispatched: {e.message}")
                continue
            if job_id is None:
                return admitted
            admitted += 1

    async def cancel_all_for_app(self, app_id: int) -> None:
        """Delete the app's build Jobs and drop its queued builds."""
        await best_effort(
            f"delete build jobs for app {app_id}",
            self.cluster.delete_jobs(
                self.namespace,
                label_selector=selector({
                    build_job_label(self.label_domain): "true",
                    app_id_label(self.label_domain): str(app_id),
                }),
            ),
        )
        removed = await self.queue_repo.delete_for_app(app_id)
        if removed:
            logger.info(f"Removed {removed} queued build(s) for app {app_id}")
