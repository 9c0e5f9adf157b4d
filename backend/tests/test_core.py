"""
Tests for core helpers: best-effort execution, env encryption, config
variants, settings parsing and exception mapping.
"""
import pytest
from cryptography.fernet import Fernet

from shipyard.core.best_effort import best_effort
from shipyard.core.config import Settings
from shipyard.core.crypto import EnvCipher
from shipyard.core.exception_handlers import status_code_for
from shipyard.core.exceptions import (
    AppNotFoundError,
    ConflictError,
    DeploymentError,
    InvalidApiKeyError,
    InvalidConfigurationError,
    InvalidStatusReportError,
    OrganizationNotFoundError,
    ServiceUnavailableError,
    WebhookSignatureMissingError,
)
from shipyard.models.deployment_config import DeploymentConfig
from shipyard.services.deployment.config_types import (
    EnvVar,
    GitConfig,
    HelmConfig,
    ImageConfig,
    VolumeMount,
    WorkloadSettings,
    config_from_row,
    config_to_row,
    for_commit,
)


class TestBestEffort:
    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def op():
            return 5

        assert await best_effort("op", op()) == 5

    @pytest.mark.asyncio
    async def test_swallows_errors(self, caplog):
        async def op():
            raise RuntimeError("unreachable")

        assert await best_effort("delete namespace web1-ns", op()) is None
        assert "delete namespace web1-ns" in caplog.text


class TestEnvCipher:
    def test_roundtrip_and_empty(self, cipher):
        env = [{"name": "TOKEN", "value": "abc"}]

        ciphertext = cipher.encrypt(env)

        assert "abc" not in ciphertext
        assert cipher.decrypt(ciphertext) == env
        assert cipher.encrypt([]) == ""
        assert cipher.decrypt("") == []

    def test_wrong_key_is_configuration_error(self, cipher):
        other = EnvCipher(Fernet.generate_key().decode())

        with pytest.raises(InvalidConfigurationError):
            other.decrypt(cipher.encrypt([{"name": "A", "value": "1"}]))

    def test_missing_key(self):
        with pytest.raises(InvalidConfigurationError):
            EnvCipher("")


class TestConfigVariants:
    """Tests for converting between config rows and typed variants."""

    def test_git_row_roundtrip(self, cipher):
        config = GitConfig(
            workload=WorkloadSettings(
                port=8080,
                replicas=2,
                env=(EnvVar("A", "1"),),
                mounts=(VolumeMount("/data", 256),),
                limits={"memory": "1Gi"},
                collect_logs=True,
            ),
            repository_id=7,
            branch="main",
            commit_hash="abc1234",
            builder="dockerfile",
            dockerfile_path="Dockerfile.prod",
            event="workflow_run",
            event_id=31,
        )

        row = config_to_row(config, cipher)

        assert row.source == "GIT"
        assert row.app_type == "workload"
        assert config_from_row(row, cipher) == config

    def test_helm_row(self, cipher):
        row = config_to_row(HelmConfig(url="oci://r/chart", url_type="oci", version="1.0"), cipher)

        assert row.app_type == "helm"
        assert row.image_tag is None
        assert config_from_row(row, cipher) == HelmConfig(url="oci://r/chart", url_type="oci", version="1.0")

    def test_image_row_defaults(self, cipher):
        row = DeploymentConfig(app_type="workload", source="IMAGE", image_tag="nginx", port=80)

        config = config_from_row(row, cipher)

        assert isinstance(config, ImageConfig)
        assert config.workload.replicas == 1
        assert config.workload.env == ()
        assert config.workload.collect_logs is False

    def test_unknown_source(self, cipher):
        with pytest.raises(ValueError):
            config_from_row(DeploymentConfig(app_type="workload", source="FTP"), cipher)

    def test_unknown_variant(self, cipher):
        with pytest.raises(TypeError):
            config_to_row(object(), cipher)

    def test_for_commit_drops_image(self):
        config = GitConfig(
            workload=WorkloadSettings(port=80), repository_id=1, branch="main",
            commit_hash="old", image_tag="img:old",
        )

        updated = for_commit(config, "new")

        assert updated.commit_hash == "new"
        assert updated.image_tag is None
        assert config.image_tag == "img:old"


class TestSettings:
    def test_list_settings_are_split(self):
        settings = Settings(
            DATABASE_URL="postgresql+asyncpg://x/y",
            STORAGE_ACCESS_MODES="ReadWriteOnce, ReadWriteMany",
            NAMESPACE_REQUIRED_ANNOTATIONS="a/b,,c/d ",
            CORS_ORIGINS="http://a, http://b",
        )

        assert settings.get_storage_access_modes() == ["ReadWriteOnce", "ReadWriteMany"]
        assert settings.get_namespace_required_annotations() == ["a/b", "c/d"]
        assert settings.get_cors_origins() == ["http://a", "http://b"]

    def test_defaults(self):
        settings = Settings(DATABASE_URL="postgresql+asyncpg://x/y", MAX_CONCURRENT_BUILDS=6)

        assert settings.MAX_CONCURRENT_BUILDS == 6
        assert settings.get_namespace_required_annotations() == []


class TestStatusCodes:
    @pytest.mark.parametrize("exc,code", [
        (AppNotFoundError("1"), 404),
        (OrganizationNotFoundError("installation 9"), 404),
        (ConflictError("deployments"), 409),
        (InvalidStatusReportError(1, "COMPLETE"), 400),
        (WebhookSignatureMissingError(), 401),
        (InvalidApiKeyError(), 403),
        (ServiceUnavailableError("GitHub"), 503),
        (DeploymentError(1, "boom"), 500),
    ])
    def test_mapping(self, exc, code):
        assert status_code_for(exc) == code
