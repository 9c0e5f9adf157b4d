"""
Thin asynchronous Kubernetes client.

Generic objects (anything with apiVersion/kind/metadata) go through the
kubernetes_asyncio dynamic client; Jobs and watches use the typed APIs.
Everything returned is a plain dict in the cluster's camelCase shape.
"""
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from kubernetes_asyncio import client, config, watch
from kubernetes_asyncio.client.rest import ApiException
from kubernetes_asyncio.config.config_exception import ConfigException
from kubernetes_asyncio.dynamic import DynamicClient
from kubernetes_asyncio.dynamic.exceptions import DynamicApiError

logger = logging.getLogger(__name__)

MERGE_PATCH = "application/merge-patch+json"


def error_status(exc: Exception) -> Optional[int]:
    """HTTP status carried by a Kubernetes API error, if any."""
    if isinstance(exc, (ApiException, DynamicApiError)):
        return getattr(exc, "status", None)
    return None


@dataclass(frozen=True)
class ObjectList:
    items: List[Dict[str, Any]]
    resource_version: Optional[str]


@dataclass(frozen=True)
class WatchEvent:
    type: str  # ADDED, MODIFIED, DELETED
    object: Dict[str, Any]


class ClusterClient:
    """
    Cluster access used by the synthesizer, build scheduler and watcher.
    """

    def __init__(self, api_client: client.ApiClient, dynamic: DynamicClient):
        self.api_client = api_client
        self.dynamic = dynamic
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)
        self.batch = client.BatchV1Api(api_client)

    @classmethod
    async def connect(cls) -> "ClusterClient":
        """
        Load in-cluster configuration, falling back to the local kubeconfig.
        """
        try:
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes config")
        except ConfigException:
            await config.load_kube_config()
            logger.info("Loaded Kubernetes config from kubeconfig")

        api_client = client.ApiClient()
        dynamic = await DynamicClient(api_client)
        return cls(api_client, dynamic)

    async def close(self) -> None:
        await self.api_client.close()

    async def _resource(self, api_version: str, kind: str):
        return await self.dynamic.resources.get(api_version=api_version, kind=kind)

    # =========================================================================
    # Generic objects
    # =========================================================================

    async def read(self, obj: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        GET an object by apiVersion, kind, name and namespace.

        Returns None when it does not exist. A 403 on a Namespace is read as
        absence, since tenants cannot see namespaces they do not own yet.
        """
        meta = obj["metadata"]
        resource = await self._resource(obj["apiVersion"], obj["kind"])
        try:
            found = await self.dynamic.get(
                resource, name=meta["name"], namespace=meta.get("namespace")
            )
        except (ApiException, DynamicApiError) as e:
            status = error_status(e)
            if status == 404 or (status == 403 and obj["kind"] == "Namespace"):
                return None
            raise
        return found.to_dict()

    async def create(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        resource = await self._resource(obj["apiVersion"], obj["kind"])
        created = await self.dynamic.create(
            resource, body=obj, namespace=obj["metadata"].get("namespace")
        )
        return created.to_dict()

    async def merge_patch(self, obj: Dict[str, Any]) -> Dict[str, Any]:
        """PATCH with a JSON merge patch, which custom resources accept."""
        meta = obj["metadata"]
        resource = await self._resource(obj["apiVersion"], obj["kind"])
        patched = await self.dynamic.patch(
            resource,
            body=obj,
            name=meta["name"],
            namespace=meta.get("namespace"),
            content_type=MERGE_PATCH,
        )
        return patched.to_dict()

    async def list(
        self,
        api_version: str,
        kind: str,
        namespace: Optional[str] = None,
        label_selector: Optional[str] = None,
    ) -> ObjectList:
        resource = await self._resource(api_version, kind)
        kwargs = {"namespace": namespace}
        if label_selector:
            kwargs["label_selector"] = label_selector
        result = (await self.dynamic.get(resource, **kwargs)).to_dict()
        return ObjectList(
            items=result.get("items") or [],
            resource_version=(result.get("metadata") or {}).get("resourceVersion"),
        )

    async def delete(
        self,
        api_version: str,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
    ) -> bool:
        """
        Delete an object.

        Returns:
            False if it was already gone
        """
        resource = await self._resource(api_version, kind)
        try:
            await self.dynamic.delete(resource, name=name, namespace=namespace)
        except (ApiException, DynamicApiError) as e:
            if error_status(e) == 404:
                return False
            raise
        return True

    # =========================================================================
    # Jobs
    # =========================================================================

    async def list_jobs(self, namespace: str, label_selector: str) -> List[Dict[str, Any]]:
        result = await self.batch.list_namespaced_job(namespace, label_selector=label_selector)
        return self.api_client.sanitize_for_serialization(result).get("items") or []

    async def create_job(self, namespace: str, body: Dict[str, Any]) -> Dict[str, Any]:
        created = await self.batch.create_namespaced_job(namespace, body)
        return self.api_client.sanitize_for_serialization(created)

    async def delete_jobs(self, namespace: str, label_selector: str) -> None:
        """Delete Jobs and their pods matching a selector."""
        await self.batch.delete_collection_namespaced_job(
            namespace,
            label_selector=label_selector,
            propagation_policy="Background",
        )

    # =========================================================================
    # Watches
    # =========================================================================

    def _list_function(self, kind: str):
        functions = {
            "Pod": self.core.list_namespaced_pod,
            "StatefulSet": self.apps.list_namespaced_stateful_set,
            "Event": self.core.list_namespaced_event,
        }
        if kind not in functions:
            raise ValueError(f"Watching {kind} is not supported")
        return functions[kind]

    async def list_for_watch(
        self,
        kind: str,
        namespace: str,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> ObjectList:
        """Initial list that seeds a watch, capturing the resource version."""
        kwargs = _selectors(label_selector, field_selector)
        if limit:
            kwargs["limit"] = limit
        result = await self._list_function(kind)(namespace, **kwargs)
        data = self.api_client.sanitize_for_serialization(result)
        return ObjectList(
            items=data.get("items") or [],
            resource_version=(data.get("metadata") or {}).get("resourceVersion"),
        )

    async def watch(
        self,
        kind: str,
        namespace: str,
        resource_version: Optional[str],
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
    ) -> AsyncIterator[WatchEvent]:
        """
        Stream change events until the server closes the connection.

        Raises:
            ApiException: On an ERROR event (for example 410 Gone)
        """
        kwargs = _selectors(label_selector, field_selector)
        if resource_version:
            kwargs["resource_version"] = resource_version
        w = watch.Watch()
        async with w.stream(self._list_function(kind), namespace, **kwargs) as stream:
            async for event in stream:
                if event["type"] == "ERROR":
                    raw = event.get("raw_object") or {}
                    raise ApiException(status=raw.get("code"), reason=raw.get("message"))
                yield WatchEvent(type=event["type"], object=event["raw_object"])


def _selectors(label_selector: Optional[str], field_selector: Optional[str]) -> Dict[str, str]:
    kwargs = {}
    if label_selector:
        kwargs["label_selector"] = label_selector
    if field_selector:
        kwargs["field_selector"] = field_selector
    return kwargs
