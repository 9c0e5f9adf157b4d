"""
Resource synthesis: turns an app, its group, a deployment and a workload
config into the ordered cluster objects that run it.

Synthesis is pure. Nothing here talks to the cluster except the post-apply
hook, which the applier calls after every object has been applied.
"""
import copy
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from shipyard.core.best_effort import best_effort
from shipyard.core.config import settings
from shipyard.models.app import App
from shipyard.models.deployment import Deployment
from shipyard.models.organization import AppGroup
from shipyard.services.cluster import manifests
from shipyard.services.cluster.labels import (
    MANAGED_BY,
    app_group_id_label,
    app_id_label,
    collect_logs_label,
    deployment_id_label,
)
from shipyard.services.cluster.patches import apply_patches, workload_overrides
from shipyard.services.deployment.config_types import (
    EnvVar,
    GitConfig,
    ImageConfig,
    WorkloadConfig,
)

logger = logging.getLogger(__name__)

ENV_PREFIX = "SHIPYARD_"


@dataclass(frozen=True)
class SynthesisOptions:
    """Platform settings that shape the synthesized objects."""

    label_domain: str
    app_domain: Optional[str]
    ingress_class_name: str
    storage_class_name: str
    storage_access_modes: Tuple[str, ...]
    cluster_internal_base_url: str

    @classmethod
    def from_settings(cls) -> "SynthesisOptions":
        return cls(
            label_domain=settings.LABEL_DOMAIN,
            app_domain=settings.APP_DOMAIN or None,
            ingress_class_name=settings.INGRESS_CLASS_NAME,
            storage_class_name=settings.STORAGE_CLASS_NAME,
            storage_access_modes=tuple(settings.get_storage_access_modes()),
            cluster_internal_base_url=settings.CLUSTER_INTERNAL_BASE_URL,
        )


PostApplyHook = Callable[[Any], Awaitable[None]]


@dataclass
class SynthesizedApp:
    namespace: Dict[str, Any]
    objects: List[Dict[str, Any]]
    post_apply: PostApplyHook


def common_labels(
    app: App,
    app_group: AppGroup,
    deployment: Deployment,
    label_domain: str,
) -> Dict[str, str]:
    return {
        app_group_id_label(label_domain): str(app_group.id),
        app_id_label(label_domain): str(app.id),
        deployment_id_label(label_domain): str(deployment.id),
        "app.kubernetes.io/name": app.name,
        "app.kubernetes.io/part-of": app_group.part_of_label,
        "app.kubernetes.io/managed-by": MANAGED_BY,
    }


def apply_labels(obj: Dict[str, Any], labels: Dict[str, str]) -> Dict[str, Any]:
    """Return a copy with labels merged into metadata and any pod template."""
    labelled = copy.deepcopy(obj)
    metadata = labelled.setdefault("metadata", {})
    metadata["labels"] = {**metadata.get("labels", {}), **labels}
    template = (labelled.get("spec") or {}).get("template")
    if template is not None:
        template_meta = template.setdefault("metadata", {})
        template_meta["labels"] = {**template_meta.get("labels", {}), **labels}
    return labelled


def automatic_env(
    app: App,
    deployment: Deployment,
    config: WorkloadConfig,
    image_tag: str,
    options: SynthesisOptions,
) -> List[EnvVar]:
    """Variables every app receives describing itself and this deployment."""
    workload = config.workload
    env = [
        EnvVar("PORT", str(workload.port)),
        EnvVar(f"{ENV_PREFIX}CLUSTER_HOSTNAME", f"{app.namespace}.{app.namespace}.svc.cluster.local"),
        EnvVar(f"{ENV_PREFIX}APP_NAME", app.display_name),
        EnvVar(f"{ENV_PREFIX}APP_ID", str(app.id)),
        EnvVar(f"{ENV_PREFIX}DEPLOYMENT_ID", str(deployment.id)),
        EnvVar(f"{ENV_PREFIX}DEPLOYMENT_SOURCE", config.source),
        EnvVar(f"{ENV_PREFIX}IMAGE_TAG", image_tag),
    ]
    if isinstance(config, GitConfig):
        env.extend([
            EnvVar(f"{ENV_PREFIX}REPOSITORY_ID", str(config.repository_id)),
            EnvVar(f"{ENV_PREFIX}COMMIT_HASH", config.commit_hash),
            EnvVar(f"{ENV_PREFIX}COMMIT_MESSAGE", deployment.commit_message or ""),
        ])
    host = _ingress_host(config, options)
    if host:
        scheme = urlparse(options.app_domain).scheme or "https"
        env.extend([
            EnvVar(f"{ENV_PREFIX}HOSTNAME", host),
            EnvVar(f"{ENV_PREFIX}URL", f"{scheme}://{host}/"),
        ])
    return env


def _ingress_host(config: WorkloadConfig, options: SynthesisOptions) -> Optional[str]:
    if not config.workload.create_ingress or not options.app_domain:
        return None
    return manifests.ingress_host(config.workload.subdomain, options.app_domain)


def _image_tag(config: WorkloadConfig) -> str:
    if isinstance(config, ImageConfig):
        return config.image_tag
    if isinstance(config, GitConfig):
        if not config.image_tag:
            raise ValueError("Git config has no built image tag")
        return config.image_tag
    raise TypeError(f"Unsupported workload config: {type(config).__name__}")


def synthesize(
    app: App,
    app_group: AppGroup,
    deployment: Deployment,
    config: WorkloadConfig,
    options: SynthesisOptions,
) -> SynthesizedApp:
    """
    Build the namespace, the ordered objects and the post-apply hook.

    Order: env Secret, StatefulSet, Service, Ingress, log forwarding objects.
    """
    workload = config.workload
    image_tag = _image_tag(config)
    labels = common_labels(app, app_group, deployment, options.label_domain)
    env_secret = manifests.secret_name(app.name, deployment.id)

    objects: List[Dict[str, Any]] = []
    if workload.env:
        objects.append(manifests.env_secret_manifest(env_secret, app.namespace, workload.env))

    statefulset = manifests.statefulset_manifest(
        name=app.name,
        namespace=app.namespace,
        image=image_tag,
        port=workload.port,
        replicas=workload.replicas,
        env=manifests.container_env(
            workload.env,
            env_secret,
            automatic_env(app, deployment, config, image_tag, options),
        ),
        mounts=workload.mounts,
        storage_class_name=options.storage_class_name,
        storage_access_modes=options.storage_access_modes,
    )
    statefulset = apply_patches(statefulset, workload_overrides(
        post_start=workload.post_start,
        pre_stop=workload.pre_stop,
        requests=workload.requests,
        limits=workload.limits,
    ))
    statefulset["spec"]["template"]["metadata"]["labels"][
        collect_logs_label(options.label_domain)
    ] = "true" if workload.collect_logs else "false"
    objects.append(statefulset)

    objects.append(manifests.service_manifest(app.namespace, app.namespace, app.name, workload.port))

    host = _ingress_host(config, options)
    if host:
        objects.append(manifests.ingress_manifest(
            name=app.namespace,
            namespace=app.namespace,
            host=host,
            service_name=app.namespace,
            ingress_class_name=options.ingress_class_name,
        ))

    if workload.collect_logs:
        objects.extend(manifests.log_forwarding_manifests(
            namespace=app.namespace,
            app_id=app.id,
            ingest_secret=app.log_ingest_secret,
            collect_logs_label=collect_logs_label(options.label_domain),
            internal_base_url=options.cluster_internal_base_url,
        ))

    return SynthesizedApp(
        namespace=apply_labels(manifests.namespace_manifest(app.namespace), labels),
        objects=[apply_labels(obj, labels) for obj in objects],
        post_apply=superseded_secret_cleanup(app.namespace, deployment.id, options.label_domain),
    )


def superseded_secret_cleanup(namespace: str, deployment_id: int, label_domain: str) -> PostApplyHook:
    """
    Hook deleting Secrets left behind by earlier deployments of the app.

    Failures are logged; the deployment has already been applied.
    """
    key = deployment_id_label(label_domain)

    async def cleanup(cluster) -> None:
        secrets = await best_effort(
            f"list secrets in {namespace} for cleanup",
            cluster.list(
                "v1", "Secret", namespace=namespace,
                label_selector=f"{key},{key}!={deployment_id}",
            ),
        )
        if secrets is None:
            return

        for secret in secrets.items:
            name = secret["metadata"]["name"]
            await best_effort(
                f"delete superseded secret {namespace}/{name}",
                cluster.delete("v1", "Secret", name, namespace=namespace),
            )
        logger.debug(f"Processed {len(secrets.items)} superseded secrets in {namespace}")

    return cleanup
