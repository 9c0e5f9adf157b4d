"""
Applies a synthesized app to the cluster.

Every object is read first, then created when absent or merge-patched when
present, so applying the same SynthesizedApp twice is harmless.
"""
import asyncio
import logging
from typing import Any, Dict, Optional, Sequence

from shipyard.core.config import settings
from shipyard.core.exceptions import NamespaceNotReadyError
from shipyard.services.cluster.client import ClusterClient
from shipyard.services.cluster.synthesizer import SynthesizedApp

logger = logging.getLogger(__name__)


def namespace_ready(namespace: Optional[Dict[str, Any]], required_annotations: Sequence[str]) -> bool:
    if not namespace:
        return False
    if (namespace.get("status") or {}).get("phase") != "Active":
        return False
    annotations = (namespace.get("metadata") or {}).get("annotations") or {}
    return all(name in annotations for name in required_annotations)


async def apply_object(cluster: ClusterClient, obj: Dict[str, Any]) -> Dict[str, Any]:
    """Create ``obj`` or merge-patch the existing one."""
    meta = obj["metadata"]
    existing = await cluster.read(obj)
    if existing is None:
        logger.debug(f"Creating {obj['kind']} {meta.get('namespace')}/{meta['name']}")
        return await cluster.create(obj)
    logger.debug(f"Patching {obj['kind']} {meta.get('namespace')}/{meta['name']}")
    return await cluster.merge_patch(obj)


async def ensure_namespace(
    cluster: ClusterClient,
    namespace: Dict[str, Any],
    attempts: int,
    interval: float,
    required_annotations: Sequence[str],
) -> None:
    """
    Create or update the namespace, waiting for a newly created one to be usable.

    Raises:
        NamespaceNotReadyError: If a new namespace is not Active with the
            required annotations within ``attempts`` polls
    """
    name = namespace["metadata"]["name"]
    if await cluster.read(namespace) is not None:
        await cluster.merge_patch(namespace)
        return

    await cluster.create(namespace)
    logger.info(f"Created namespace {name}, waiting for it to become ready")
    for _ in range(attempts):
        if namespace_ready(await cluster.read(namespace), required_annotations):
            return
        await asyncio.sleep(interval)
    raise NamespaceNotReadyError(name, attempts)


async def apply(
    cluster: ClusterClient,
    synthesized: SynthesizedApp,
    attempts: Optional[int] = None,
    interval: Optional[float] = None,
    required_annotations: Optional[Sequence[str]] = None,
) -> None:
    """Apply the namespace, then each object in order, then the post-apply hook."""
    await ensure_namespace(
        cluster,
        synthesized.namespace,
        attempts if attempts is not None else settings.NAMESPACE_READY_ATTEMPTS,
        interval if interval is not None else settings.NAMESPACE_READY_INTERVAL,
        required_annotations if required_annotations is not None
        else settings.get_namespace_required_annotations(),
    )
    for obj in synthesized.objects:
        await apply_object(cluster, obj)
    await synthesized.post_apply(cluster)
