"""
Check-run bridge: mirrors deployment progress onto the commit in the Git
host. Nothing here may fail a deployment, so every call is best-effort.
"""
import logging
from typing import Optional

from shipyard.core.best_effort import best_effort
from shipyard.services.git.provider import GitProvider

logger = logging.getLogger(__name__)


class CheckRunBridge:
    def __init__(self, provider: Optional[GitProvider]):
        self.provider = provider

    async def create(
        self,
        repo_id: int,
        commit_hash: str,
        status: str,
        details_url: str,
    ) -> Optional[int]:
        """
        Returns:
            The new check run id, or None if it could not be created
        """
        if self.provider is None:
            return None
        return await best_effort(
            f"create check run on {repo_id}@{commit_hash}",
            self.provider.create_check_run(repo_id, commit_hash, status, details_url),
        )

    async def update(self, repo_id: int, check_run_id: Optional[int], status: str) -> None:
        if self.provider is None or not check_run_id:
            return
        await best_effort(
            f"update check run {check_run_id} to {status}",
            self.provider.update_check_run(repo_id, check_run_id, status),
        )
