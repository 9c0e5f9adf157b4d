"""
GitHub webhook ingestion.

Pushes and workflow runs on a connected branch start deployments for every
app with continuous deployment enabled on that repository. Deleted
repositories and uninstalled GitHub Apps are unlinked.
"""
import logging
import re
from typing import Any, Dict, List

from shipyard.core.exceptions import (
    AppNotFoundError,
    DeploymentError,
    OrganizationNotFoundError,
    UnknownWebhookRequestTypeError,
    ValidationError,
)
from shipyard.models.app import App
from shipyard.repositories.app_repository import AppRepository
from shipyard.repositories.deployment_repository import DeploymentRepository
from shipyard.services.deployment.config_types import GitConfig, config_from_row, for_commit
from shipyard.services.deployment.state_machine import DeploymentService, GitOptions

logger = logging.getLogger(__name__)

BRANCH_REF = re.compile(r"^refs/heads/(?P<branch>.+)$")

IGNORED_EVENTS = {"ping"}


class WebhookService:
    """
    Dispatches verified webhook payloads to the deployment service.
    """

    def __init__(self, deployments: DeploymentService):
        self.deployments = deployments
        self.app_repo = AppRepository(deployments.db)
        self.deployment_repo = DeploymentRepository(deployments.db)

    async def handle(self, event: str, payload: Dict[str, Any]) -> List[int]:
        """
        Handle one webhook delivery.

        Returns:
            Ids of the deployments created or advanced

        Raises:
            UnknownWebhookRequestTypeError: For events that are not handled
            ValidationError: If the payload is missing required fields
            AppNotFoundError: If no app is connected to the branch
            OrganizationNotFoundError: If an uninstalled GitHub App was linked to no organization
        """
        if event in IGNORED_EVENTS:
            return []
        if event == "push":
            return await self.handle_push(payload)
        if event == "workflow_run":
            return await self.handle_workflow_run(payload)
        if event == "repository":
            return await self.handle_repository(payload)
        if event == "installation":
            return await self.handle_installation(payload)
        raise UnknownWebhookRequestTypeError(event, payload.get("action"))

    def _git_config(self, app: App) -> GitConfig:
        config = config_from_row(app.config, self.deployments.cipher)
        if not isinstance(config, GitConfig):
            raise ValidationError(f"App {app.id} is not deployed from Git")
        return config

    @staticmethod
    def _repository_id(payload: Dict[str, Any]) -> int:
        repo_id = (payload.get("repository") or {}).get("id")
        if not repo_id:
            raise ValidationError("Repository ID not specified")
        return repo_id

    async def handle_push(self, payload: Dict[str, Any]) -> List[int]:
        repo_id = self._repository_id(payload)
        match = BRANCH_REF.match(payload.get("ref") or "")
        if not match:
            # Tag pushes and other refs never deploy
            logger.debug(f"Ignoring push to {payload.get('ref')}")
            return []
        branch = match.group("branch")

        apps = await self.app_repo.list_connected(repo_id, branch, "push")
        if not apps:
            raise AppNotFoundError(f"repository {repo_id} branch {branch}")

        head_commit = payload.get("head_commit") or {}
        created = []
        for app in apps:
            config = for_commit(self._git_config(app), head_commit["id"])
            try:
                deployment = await self.deployments.create(
                    app.organization,
                    app,
                    config,
                    commit_message=head_commit.get("message"),
                    git=GitOptions(check_run=True),
                )
            except DeploymentError as e:
                logger.error(f"Push deployment for app {app.id} failed: {e.message}")
                continue
            created.append(deployment.id)
        logger.info(f"Push to {repo_id}@{branch} started deployments {created}")
        return created

    async def handle_workflow_run(self, payload: Dict[str, Any]) -> List[int]:
        repo_id = self._repository_id(payload)
        action = payload.get("action")
        if action == "in_progress":
            return []
        if action not in ("requested", "completed"):
            raise UnknownWebhookRequestTypeError("workflow_run", action)

        run = payload["workflow_run"]
        apps = await self.app_repo.list_connected(
            repo_id,
            run["head_branch"],
            "workflow_run",
            event_id=(payload.get("workflow") or {}).get("id"),
        )
        if not apps:
            raise AppNotFoundError(f"repository {repo_id} branch {run['head_branch']}")

        if action == "requested":
            return await self._create_pending(apps, run)

        advanced = []
        for app in apps:
            try:
                deployment = await self.deployments.complete_workflow(
                    app.organization, app, run["id"], run.get("conclusion")
                )
            except DeploymentError as e:
                logger.error(f"Workflow deployment for app {app.id} failed: {e.message}")
                continue
            if deployment is not None:
                advanced.append(deployment.id)
        return advanced

    async def _create_pending(self, apps: List[App], run: Dict[str, Any]) -> List[int]:
        head_commit = run.get("head_commit") or {}
        created = []
        for app in apps:
            try:
                config = for_commit(self._git_config(app), head_commit["id"])
                deployment = await self.deployments.create(
                    app.organization,
                    app,
                    config,
                    commit_message=head_commit.get("message"),
                    workflow_run_id=run["id"],
                    git=GitOptions(pending_check_run=True),
                )
            except Exception as e:
                logger.error(f"Could not create pending deployment for app {app.id}: {e}")
                continue
            created.append(deployment.id)
        return created

    async def handle_repository(self, payload: Dict[str, Any]) -> List[int]:
        """
        A deleted repository leaves its apps running the last built image.
        """
        action = payload.get("action")
        if action == "transferred":
            return []
        if action != "deleted":
            raise UnknownWebhookRequestTypeError("repository", action)

        repo_id = self._repository_id(payload)
        unlinked = await self.deployment_repo.unlink_repository(repo_id)
        logger.info(f"Repository {repo_id} deleted; {unlinked} configs now deploy from their image")
        return []

    async def handle_installation(self, payload: Dict[str, Any]) -> List[int]:
        action = payload.get("action")
        # New installations are linked to an organization by the install flow
        if action == "created":
            return []
        if action != "deleted":
            raise UnknownWebhookRequestTypeError("installation", action)

        installation_id = (payload.get("installation") or {}).get("id")
        if not installation_id:
            raise ValidationError("Installation ID not specified")
        unlinked = await self.app_repo.unlink_installation(installation_id)
        if not unlinked:
            raise OrganizationNotFoundError(f"installation {installation_id}")
        logger.info(f"GitHub installation {installation_id} removed from {unlinked} organizations")
        return []
