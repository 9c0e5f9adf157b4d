"""
Builders for the individual cluster objects of an app.

Each function returns a plain dict shaped like the Kubernetes object.
"""
import hashlib
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse

from shipyard.services.deployment.config_types import EnvVar, VolumeMount

LOGGING_API_VERSION = "logging.banzaicloud.io/v1beta1"
LOG_INGEST_SECRET_NAME = "internal-logging-ingest"
SERVICE_PORT = 80


def volume_name(mount_path: str) -> str:
    """Volume names must be DNS labels, so derive one from the path."""
    return "volume-" + hashlib.md5(mount_path.encode()).hexdigest()


def secret_name(app_name: str, deployment_id: int) -> str:
    return f"{app_name}-secrets-{deployment_id}"


def ingress_host(subdomain: str, app_domain: str) -> Optional[str]:
    host = urlparse(app_domain).netloc
    if not host or not subdomain:
        return None
    return f"{subdomain}.{host}"


def namespace_manifest(name: str) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {"name": name},
    }


def env_secret_manifest(name: str, namespace: str, env: Sequence[EnvVar]) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name, "namespace": namespace},
        "stringData": {var.name: var.value for var in env},
    }


def container_env(
    env: Sequence[EnvVar],
    secret: str,
    automatic: Sequence[EnvVar],
) -> List[Dict[str, Any]]:
    """
    User variables come from the env Secret; automatic variables are added
    as literals unless the user already set the same name.
    """
    result = [
        {"name": var.name, "valueFrom": {"secretKeyRef": {"name": secret, "key": var.name}}}
        for var in env
    ]
    taken = {var.name for var in env}
    for var in automatic:
        if var.name not in taken:
            result.append({"name": var.name, "value": var.value})
            taken.add(var.name)
    return result


def statefulset_manifest(
    name: str,
    namespace: str,
    image: str,
    port: int,
    replicas: int,
    env: List[Dict[str, Any]],
    mounts: Sequence[VolumeMount],
    storage_class_name: str,
    storage_access_modes: Sequence[str],
) -> Dict[str, Any]:
    spec = {
        "selector": {"matchLabels": {"app": name}},
        "serviceName": namespace,
        "replicas": replicas,
        "template": {
            "metadata": {"labels": {"app": name}},
            "spec": {
                "automountServiceAccountToken": False,
                # Empty lists rather than absent keys so an update clears them
                "initContainers": [],
                "volumes": [],
                "containers": [
                    {
                        "name": name,
                        "image": image,
                        "imagePullPolicy": "Always",
                        "ports": [{"containerPort": port, "protocol": "TCP"}],
                        "resources": {},
                        "env": env,
                        "volumeMounts": [
                            {"mountPath": mount.path, "name": volume_name(mount.path)}
                            for mount in mounts
                        ],
                        "lifecycle": {},
                    }
                ],
            },
        },
        "persistentVolumeClaimRetentionPolicy": {
            "whenDeleted": "Delete",
            "whenScaled": "Retain",
        },
    }
    if mounts:
        spec["volumeClaimTemplates"] = [
            {
                "metadata": {"name": volume_name(mount.path)},
                "spec": {
                    "accessModes": list(storage_access_modes),
                    "storageClassName": storage_class_name,
                    "resources": {"requests": {"storage": f"{mount.amount_in_mib}Mi"}},
                },
            }
            for mount in mounts
        ]
    return {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": {"name": name, "namespace": namespace},
        "spec": spec,
    }


def service_manifest(name: str, namespace: str, app_name: str, port: int) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "type": "ClusterIP",
            "selector": {"app": app_name},
            "ports": [{"port": SERVICE_PORT, "targetPort": port, "protocol": "TCP"}],
        },
    }


def ingress_manifest(
    name: str,
    namespace: str,
    host: str,
    service_name: str,
    ingress_class_name: str,
) -> Dict[str, Any]:
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "ingressClassName": ingress_class_name,
            "rules": [
                {
                    "host": host,
                    "http": {
                        "paths": [
                            {
                                "path": "/",
                                "pathType": "Prefix",
                                "backend": {
                                    "service": {
                                        "name": service_name,
                                        "port": {"number": SERVICE_PORT},
                                    }
                                },
                            }
                        ]
                    },
                }
            ],
        },
    }


def log_forwarding_manifests(
    namespace: str,
    app_id: int,
    ingest_secret: str,
    collect_logs_label: str,
    internal_base_url: str,
) -> List[Dict[str, Any]]:
    """
    Secret, Flow and Output for the cluster logging operator.

    The Flow selects pods labelled for collection; the Output posts them to
    the ingest endpoint authenticated by the app's ingest secret.
    """
    output_name = f"{namespace}-log-output"
    return [
        {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": LOG_INGEST_SECRET_NAME, "namespace": namespace},
            "stringData": {"secret": ingest_secret},
        },
        {
            "apiVersion": LOGGING_API_VERSION,
            "kind": "Flow",
            "metadata": {"name": f"{namespace}-log-flow", "namespace": namespace},
            "spec": {
                "match": [{"select": {"labels": {collect_logs_label: "true"}}}],
                "localOutputRefs": [output_name],
            },
        },
        {
            "apiVersion": LOGGING_API_VERSION,
            "kind": "Output",
            "metadata": {"name": output_name, "namespace": namespace},
            "spec": {
                "http": {
                    "endpoint": f"{internal_base_url}/api/v1/logs/ingest?type=runtime&appId={app_id}",
                    "auth": {
                        "username": {"value": "shipyard"},
                        "password": {
                            "valueFrom": {
                                "secretKeyRef": {"name": LOG_INGEST_SECRET_NAME, "key": "secret"}
                            }
                        },
                    },
                    "content_type": "application/jsonl",
                    "buffer": {
                        "type": "memory",
                        "tags": "time",
                        "timekey": "1s",
                        "timekey_wait": "0s",
                        "flush_mode": "interval",
                        "flush_interval": "1s",
                    },
                }
            },
        },
    ]
