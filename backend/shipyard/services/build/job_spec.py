"""
Build Job manifest.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from shipyard.core.config import settings
from shipyard.services.cluster.labels import app_id_label, build_job_label, deployment_id_label

BUILDER_CERTS_SECRET = "buildkit-client-certs"
REGISTRY_CREDENTIALS_SECRET = "registry-credentials"


@dataclass(frozen=True)
class BuildRequest:
    """Everything a builder container needs to produce one image."""

    app_id: int
    deployment_id: int
    tag: str
    ref: str
    clone_url: str
    image_tag: str
    image_cache_tag: str
    deployment_secret: str
    builder: str = "railpack"
    root_dir: str = "."
    dockerfile_path: Optional[str] = None


def builder_image(builder: str) -> str:
    images = {
        "dockerfile": settings.DOCKERFILE_BUILDER_IMAGE,
        "railpack": settings.RAILPACK_BUILDER_IMAGE,
    }
    if builder not in images:
        raise ValueError(f"Invalid builder: {builder}. Expected dockerfile or railpack.")
    return images[builder]


def job_name(tag: str) -> str:
    return f"build-image-{tag}"


def build_job_manifest(request: BuildRequest, label_domain: Optional[str] = None) -> Dict[str, Any]:
    """
    Job running the builder image for ``request``.

    The builder reports progress back through the deployment callback using
    DEPLOYMENT_API_SECRET.
    """
    env = [
        {"name": "CLONE_URL", "value": request.clone_url},
        {"name": "REF", "value": request.ref},
        {"name": "IMAGE_TAG", "value": request.image_tag},
        {"name": "CACHE_TAG", "value": request.image_cache_tag},
        {"name": "DEPLOYMENT_API_SECRET", "value": request.deployment_secret},
        {"name": "DEPLOYMENT_API_URL", "value": f"{settings.CLUSTER_INTERNAL_BASE_URL}/api"},
        {"name": "DOCKER_CONFIG", "value": "/creds"},
        {"name": "ROOT_DIRECTORY", "value": request.root_dir},
    ]
    if request.builder == "dockerfile":
        env.append({"name": "DOCKERFILE_PATH", "value": request.dockerfile_path or "Dockerfile"})

    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {
            "name": job_name(request.tag),
            "labels": {
                build_job_label(label_domain): "true",
                app_id_label(label_domain): str(request.app_id),
                deployment_id_label(label_domain): str(request.deployment_id),
            },
        },
        "spec": {
            "ttlSecondsAfterFinished": settings.BUILD_JOB_TTL_SECONDS,
            "backoffLimit": 1,
            "template": {
                "spec": {
                    "containers": [
                        {
                            "name": "builder",
                            "image": builder_image(request.builder),
                            "imagePullPolicy": "Always",
                            "env": env,
                            "volumeMounts": [
                                {"mountPath": "/certs", "name": "buildkitd-tls-certs", "readOnly": True},
                                {"mountPath": "/creds", "name": "registry-credentials", "readOnly": True},
                            ],
                        }
                    ],
                    "volumes": [
                        {
                            "name": "buildkitd-tls-certs",
                            "secret": {"secretName": BUILDER_CERTS_SECRET},
                        },
                        {
                            "name": "registry-credentials",
                            "secret": {"secretName": REGISTRY_CREDENTIALS_SECRET, "defaultMode": 0o777},
                        },
                    ],
                    "restartPolicy": "Never",
                },
            },
        },
    }
