"""
Git provider access: repositories, commits and check runs.

The GitHub implementation talks to the REST API with httpx using a token
from settings.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple
from urllib.parse import urlparse, urlunparse

import httpx

from shipyard.core.config import settings
from shipyard.core.exceptions import InstallationNotFoundError, ServiceUnavailableError
from shipyard.models.organization import Organization

logger = logging.getLogger(__name__)

CHECK_RUN_NAME = "Shipyard"

# Check run statuses understood by the provider
QUEUED = "queued"
IN_PROGRESS = "in_progress"
SUCCESS = "success"
FAILURE = "failure"
CANCELLED = "cancelled"


@dataclass(frozen=True)
class GitRepository:
    id: int
    owner: str
    name: str
    html_url: str
    clone_url: str


def status_and_conclusion(status: str) -> Tuple[str, Optional[str]]:
    """Split a commit status into the API's (status, conclusion) pair."""
    if status in (QUEUED, IN_PROGRESS):
        return status, None
    if status in (SUCCESS, FAILURE, CANCELLED):
        return "completed", status
    raise ValueError(f"Unknown check run status: {status}")


class GitProvider(Protocol):
    """Operations the orchestrator needs from a Git host."""

    async def get_repo(self, repo_id: int) -> GitRepository:
        ...

    async def clone_url(self, repo_id: int) -> str:
        ...

    async def create_check_run(
        self, repo_id: int, sha: str, status: str, details_url: str
    ) -> int:
        ...

    async def update_check_run(self, repo_id: int, check_run_id: int, status: str) -> None:
        ...

    async def get_commit_message(self, repo_id: int, sha: str) -> str:
        ...


class GitHubGitProvider:
    """
    GitHub REST client.

    Args:
        token: API token, defaults to GITHUB_TOKEN
        api_url: API base URL, defaults to GITHUB_API_URL
    """

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token if token is not None else settings.GITHUB_TOKEN
        self.api_url = (api_url or settings.GITHUB_API_URL).rstrip("/")
        self.timeout = timeout or settings.GITHUB_TIMEOUT
        self.transport = transport
        self._repos: Dict[int, GitRepository] = {}

    def _client(self) -> httpx.AsyncClient:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return httpx.AsyncClient(
            base_url=self.api_url,
            headers=headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=json)
                response.raise_for_status()
                return response.json()
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise ServiceUnavailableError("GitHub", f"Cannot reach {self.api_url}: {e}")

    async def get_repo(self, repo_id: int) -> GitRepository:
        if repo_id not in self._repos:
            data = await self._request("GET", f"/repositories/{repo_id}")
            self._repos[repo_id] = GitRepository(
                id=data["id"],
                owner=data["owner"]["login"],
                name=data["name"],
                html_url=data["html_url"],
                clone_url=data["clone_url"],
            )
        return self._repos[repo_id]

    async def clone_url(self, repo_id: int) -> str:
        """Clone URL with the token embedded so the builder needs no prompt."""
        repo = await self.get_repo(repo_id)
        if not self.token:
            return repo.clone_url
        parsed = urlparse(repo.clone_url)
        netloc = f"x-access-token:{self.token}@{parsed.hostname}"
        if parsed.port:
            netloc += f":{parsed.port}"
        return urlunparse(parsed._replace(netloc=netloc))

    async def create_check_run(self, repo_id: int, sha: str, status: str, details_url: str) -> int:
        repo = await self.get_repo(repo_id)
        state, conclusion = status_and_conclusion(status)
        body = {
            "name": CHECK_RUN_NAME,
            "head_sha": sha,
            "status": state,
            "details_url": details_url,
        }
        if conclusion:
            body["conclusion"] = conclusion
        data = await self._request("POST", f"/repos/{repo.owner}/{repo.name}/check-runs", json=body)
        return data["id"]

    async def update_check_run(self, repo_id: int, check_run_id: int, status: str) -> None:
        repo = await self.get_repo(repo_id)
        state, conclusion = status_and_conclusion(status)
        body = {"status": state}
        if conclusion:
            body["conclusion"] = conclusion
        await self._request(
            "PATCH", f"/repos/{repo.owner}/{repo.name}/check-runs/{check_run_id}", json=body
        )

    async def get_commit_message(self, repo_id: int, sha: str) -> str:
        repo = await self.get_repo(repo_id)
        data = await self._request("GET", f"/repos/{repo.owner}/{repo.name}/commits/{sha}")
        return data["commit"]["message"]


def get_git_provider(org: Organization) -> GitProvider:
    """
    Provider for an organization's linked Git installation.

    Raises:
        InstallationNotFoundError: If the organization is not linked to GitHub
    """
    if not org.github_installation_id:
        raise InstallationNotFoundError(str(org.id))
    return GitHubGitProvider()
