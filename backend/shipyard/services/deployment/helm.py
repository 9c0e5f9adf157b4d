"""
Helm chart deployments.

The orchestrator never runs helm itself; it starts a short-lived deployer
Job whose container runs ``helm $HELM_ARGS`` and reports back through the
deployment callback.
"""
import json
import logging
import secrets
from typing import Any, Dict, List, Optional

from shipyard.core.config import settings
from shipyard.models.app import App
from shipyard.models.deployment import Deployment
from shipyard.services.cluster import manifests
from shipyard.services.cluster.applier import ensure_namespace
from shipyard.services.cluster.client import ClusterClient
from shipyard.services.cluster.labels import app_id_label, deployment_id_label
from shipyard.services.deployment.config_types import HelmConfig

logger = logging.getLogger(__name__)

KUBECONFIG_SECRET = "kube-auth"


def helm_args(release: str, namespace: str, config: HelmConfig) -> List[str]:
    """
    Arguments for ``helm upgrade --install``.

    Absolute URLs name a chart archive; OCI URLs need an explicit version.
    """
    args = ["upgrade", "--install", "--namespace", namespace]
    for key, value in config.values.items():
        # HELM_ARGS is word-split by the deployer shell, so values must not contain spaces
        encoded = json.dumps(value, separators=(",", ":"))
        args.extend(["--set-json", f"{key}={encoded}"])

    if config.url_type == "absolute":
        args.extend([release, config.url])
    elif config.url_type == "oci":
        if not config.version:
            raise ValueError("OCI charts require a version")
        args.extend([release, "--version", config.version, config.url])
    else:
        raise ValueError(f"Unknown chart URL type: {config.url_type}")
    return args


def helm_job_manifest(
    app: App,
    deployment: Deployment,
    config: HelmConfig,
    label_domain: Optional[str] = None,
    suffix: Optional[str] = None,
) -> Dict[str, Any]:
    labels = {
        app_id_label(label_domain): str(app.id),
        deployment_id_label(label_domain): str(deployment.id),
    }
    args = helm_args(app.name, app.namespace, config)
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {
            "name": f"helm-upgrade-{app.name}-{suffix or secrets.token_hex(4)}",
            "labels": labels,
        },
        "spec": {
            "ttlSecondsAfterFinished": settings.BUILD_JOB_TTL_SECONDS,
            "backoffLimit": 1,
            "activeDeadlineSeconds": settings.HELM_JOB_DEADLINE_SECONDS,
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "automountServiceAccountToken": False,
                    "containers": [
                        {
                            "name": "helm",
                            "image": settings.HELM_DEPLOYER_IMAGE,
                            "env": [
                                {"name": "DEPLOYMENT_API_SECRET", "value": deployment.secret},
                                {"name": "DEPLOYMENT_API_URL", "value": f"{settings.CLUSTER_INTERNAL_BASE_URL}/api"},
                                {"name": "KUBECONFIG", "value": "/opt/creds/kubeconfig"},
                                {"name": "HELM_ARGS", "value": " ".join(args)},
                            ],
                            "volumeMounts": [
                                {"name": "kubeconfig", "mountPath": "/opt/creds", "readOnly": True}
                            ],
                            "resources": {
                                "limits": {"cpu": "500m", "memory": "500Mi"},
                                "requests": {"cpu": "250m", "memory": "128Mi"},
                            },
                            "securityContext": {
                                "capabilities": {"drop": ["ALL"]},
                                "runAsNonRoot": True,
                                "runAsUser": 65532,
                                "runAsGroup": 65532,
                                "allowPrivilegeEscalation": False,
                            },
                        }
                    ],
                    "volumes": [
                        {
                            "name": "kubeconfig",
                            "secret": {
                                "secretName": KUBECONFIG_SECRET,
                                "items": [{"key": "kubeconfig", "path": "kubeconfig"}],
                            },
                        }
                    ],
                    "restartPolicy": "Never",
                },
            },
        },
    }


async def start_helm_deployment(
    cluster: ClusterClient,
    app: App,
    deployment: Deployment,
    config: HelmConfig,
) -> str:
    """
    Make sure the target namespace exists, then create the deployer Job.

    Returns:
        The Job's uid
    """
    await ensure_namespace(
        cluster,
        manifests.namespace_manifest(app.namespace),
        settings.NAMESPACE_READY_ATTEMPTS,
        settings.NAMESPACE_READY_INTERVAL,
        settings.get_namespace_required_annotations(),
    )
    job = await cluster.create_job(
        settings.BUILD_NAMESPACE, helm_job_manifest(app, deployment, config)
    )
    job_id = job["metadata"]["uid"]
    logger.info(f"Created helm deployer job {job_id} for deployment {deployment.id}")
    return job_id
