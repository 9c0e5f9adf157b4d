"""
Typed variants of a deployment config.

A DeploymentConfig row is turned into exactly one of GitConfig, ImageConfig
or HelmConfig. Consumers branch on the dataclass type and raise on anything
else, so adding a variant fails loudly everywhere it is not handled.
"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Union

from shipyard.core.crypto import EnvCipher
from shipyard.models.deployment_config import DeploymentConfig as DeploymentConfigRow

SOURCE_GIT = "GIT"
SOURCE_IMAGE = "IMAGE"
SOURCE_HELM = "HELM"

BUILDERS = ("dockerfile", "railpack")


@dataclass(frozen=True)
class EnvVar:
    name: str
    value: str


@dataclass(frozen=True)
class VolumeMount:
    path: str
    amount_in_mib: int


@dataclass(frozen=True)
class WorkloadSettings:
    """Runtime parameters shared by Git and image workloads."""

    port: int
    replicas: int = 1
    env: Tuple[EnvVar, ...] = ()
    mounts: Tuple[VolumeMount, ...] = ()
    requests: Dict[str, str] = field(default_factory=dict)
    limits: Dict[str, str] = field(default_factory=dict)
    post_start: Optional[str] = None
    pre_stop: Optional[str] = None
    collect_logs: bool = False
    create_ingress: bool = False
    subdomain: Optional[str] = None


@dataclass(frozen=True)
class GitConfig:
    """Build from a repository, then deploy the built image."""

    workload: WorkloadSettings
    repository_id: int
    branch: str
    commit_hash: str
    builder: str = "railpack"
    root_dir: str = "."
    dockerfile_path: Optional[str] = None
    event: str = "push"
    event_id: Optional[int] = None
    image_tag: Optional[str] = None

    source = SOURCE_GIT


@dataclass(frozen=True)
class ImageConfig:
    """Deploy an existing image directly."""

    workload: WorkloadSettings
    image_tag: str

    source = SOURCE_IMAGE


@dataclass(frozen=True)
class HelmConfig:
    """Install a Helm chart with a deployer Job."""

    url: str
    url_type: str = "absolute"  # 'absolute' or 'oci'
    version: Optional[str] = None
    values: Dict[str, Any] = field(default_factory=dict)

    source = SOURCE_HELM


WorkloadConfig = Union[GitConfig, ImageConfig]
DeploymentConfigVariant = Union[GitConfig, ImageConfig, HelmConfig]


def with_image_tag(config: GitConfig, image_tag: str) -> GitConfig:
    return replace(config, image_tag=image_tag)


def _workload_from_row(row: DeploymentConfigRow, cipher: EnvCipher) -> WorkloadSettings:
    return WorkloadSettings(
        port=row.port,
        replicas=row.replicas if row.replicas is not None else 1,
        env=tuple(EnvVar(e["name"], e["value"]) for e in cipher.decrypt(row.env_ciphertext or "")),
        mounts=tuple(VolumeMount(m["path"], int(m["amount_in_mib"])) for m in (row.mounts or [])),
        requests=dict(row.requests or {}),
        limits=dict(row.limits or {}),
        post_start=row.post_start,
        pre_stop=row.pre_stop,
        collect_logs=bool(row.collect_logs),
        create_ingress=bool(row.create_ingress),
        subdomain=row.subdomain,
    )


def config_from_row(row: DeploymentConfigRow, cipher: EnvCipher) -> DeploymentConfigVariant:
    """
    Build the typed variant for a stored config row.

    Env vars are decrypted here, just before use.

    Raises:
        ValueError: If the row's source is unknown
    """
    if row.source == SOURCE_HELM:
        return HelmConfig(
            url=row.helm_url,
            url_type=row.helm_url_type or "absolute",
            version=row.helm_version,
            values=dict(row.helm_values or {}),
        )
    if row.source == SOURCE_IMAGE:
        return ImageConfig(workload=_workload_from_row(row, cipher), image_tag=row.image_tag)
    if row.source == SOURCE_GIT:
        return GitConfig(
            workload=_workload_from_row(row, cipher),
            repository_id=row.repository_id,
            branch=row.branch,
            commit_hash=row.commit_hash,
            builder=row.builder or "railpack",
            root_dir=row.root_dir or ".",
            dockerfile_path=row.dockerfile_path,
            event=row.event or "push",
            event_id=row.event_id,
            image_tag=row.image_tag,
        )
    raise ValueError(f"Unknown deployment config source: {row.source}")


def _workload_columns(workload: WorkloadSettings, cipher: EnvCipher) -> Dict[str, Any]:
    env: List[Dict[str, str]] = [{"name": e.name, "value": e.value} for e in workload.env]
    return {
        "env_ciphertext": cipher.encrypt(env),
        "port": workload.port,
        "replicas": workload.replicas,
        "mounts": [{"path": m.path, "amount_in_mib": m.amount_in_mib} for m in workload.mounts],
        "requests": dict(workload.requests),
        "limits": dict(workload.limits),
        "post_start": workload.post_start,
        "pre_stop": workload.pre_stop,
        "collect_logs": workload.collect_logs,
        "create_ingress": workload.create_ingress,
        "subdomain": workload.subdomain,
    }


def config_to_row(config: DeploymentConfigVariant, cipher: EnvCipher) -> DeploymentConfigRow:
    """Create a new (unsaved) row for a config variant."""
    if isinstance(config, HelmConfig):
        return DeploymentConfigRow(
            app_type="helm",
            source=SOURCE_HELM,
            helm_url=config.url,
            helm_url_type=config.url_type,
            helm_version=config.version,
            helm_values=dict(config.values),
        )
    if isinstance(config, ImageConfig):
        return DeploymentConfigRow(
            app_type="workload",
            source=SOURCE_IMAGE,
            image_tag=config.image_tag,
            **_workload_columns(config.workload, cipher),
        )
    if isinstance(config, GitConfig):
        return DeploymentConfigRow(
            app_type="workload",
            source=SOURCE_GIT,
            repository_id=config.repository_id,
            branch=config.branch,
            commit_hash=config.commit_hash,
            builder=config.builder,
            root_dir=config.root_dir,
            dockerfile_path=config.dockerfile_path,
            event=config.event,
            event_id=config.event_id,
            image_tag=config.image_tag,
            **_workload_columns(config.workload, cipher),
        )
    raise TypeError(f"Unsupported config variant: {type(config).__name__}")


def for_commit(config: GitConfig, commit_hash: str) -> GitConfig:
    """Reuse a Git config for a new commit; the image must be rebuilt."""
    return replace(config, commit_hash=commit_hash, image_tag=None)
