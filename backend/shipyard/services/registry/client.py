"""
Container registry (Harbor) management API.
"""
import logging
from typing import Optional

import httpx

from shipyard.core.config import settings

logger = logging.getLogger(__name__)


class RegistryClient:
    """Deletes image repositories from the registry project."""

    DEFAULT_TIMEOUT = 15.0

    def __init__(
        self,
        hostname: Optional[str] = None,
        project: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.hostname = hostname or settings.REGISTRY_HOSTNAME
        self.project = project or settings.REGISTRY_PROJECT
        self.username = username if username is not None else settings.REGISTRY_USERNAME
        self.password = password if password is not None else settings.REGISTRY_PASSWORD
        self.transport = transport

    @property
    def api_url(self) -> str:
        return f"https://{self.hostname}/api/v2.0"

    async def delete_repository(self, name: str) -> bool:
        """
        Delete an image repository.

        Returns:
            False if it did not exist

        Raises:
            httpx.HTTPStatusError: On any other error response
        """
        auth = (self.username, self.password) if self.username else None
        async with httpx.AsyncClient(
            timeout=self.DEFAULT_TIMEOUT, auth=auth, transport=self.transport
        ) as client:
            response = await client.delete(
                f"{self.api_url}/projects/{self.project}/repositories/{name}"
            )
        if response.status_code == 404:
            return False
        response.raise_for_status()
        logger.info(f"Deleted image repository {self.project}/{name}")
        return True
