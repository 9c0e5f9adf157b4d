"""
Application configuration using Pydantic Settings.
"""
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Application
    APP_NAME: str = "Shipyard"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "info"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str
    DB_SCHEMA: str = "shipyard"

    # Security
    API_KEY: str = ""
    FIELD_ENCRYPTION_KEY: str = ""
    GITHUB_WEBHOOK_SECRET: str = ""
    BUILD_LOG_INGEST_SECRET: str = ""
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Public and in-cluster addresses of this service
    BASE_URL: str = "http://localhost:8000"
    CLUSTER_INTERNAL_BASE_URL: str = "http://shipyard.shipyard.svc.cluster.local"

    # Celery
    REDIS_URL: str = "redis://redis:6379/0"

    # Build scheduling
    MAX_CONCURRENT_BUILDS: int = 6
    # Serialise count-then-create admission with a Postgres advisory lock
    STRICT_BUILD_ADMISSION: bool = False
    BUILD_NAMESPACE: str = "shipyard"
    BUILD_QUEUE_POLL_INTERVAL: int = 30  # seconds between queue drains
    BUILD_JOB_TTL_SECONDS: int = 300
    DOCKERFILE_BUILDER_IMAGE: str = "registry.local/shipyard/dockerfile-builder:latest"
    RAILPACK_BUILDER_IMAGE: str = "registry.local/shipyard/railpack-builder:latest"
    HELM_DEPLOYER_IMAGE: str = "registry.local/shipyard/helm-deployer:latest"
    HELM_JOB_DEADLINE_SECONDS: int = 300

    # Registry
    REGISTRY_HOSTNAME: str = "registry.local"
    REGISTRY_PROJECT: str = "shipyard"
    REGISTRY_USERNAME: Optional[str] = None
    REGISTRY_PASSWORD: Optional[str] = None

    # Cluster resources
    LABEL_DOMAIN: str = "shipyard.dev"
    APP_DOMAIN: Optional[str] = None  # e.g. https://apps.example.com
    INGRESS_CLASS_NAME: str = "nginx"
    STORAGE_CLASS_NAME: str = "standard"
    STORAGE_ACCESS_MODES: str = "ReadWriteOnce"
    NAMESPACE_REQUIRED_ANNOTATIONS: str = ""  # comma-separated
    NAMESPACE_READY_ATTEMPTS: int = 20
    NAMESPACE_READY_INTERVAL: float = 0.2  # seconds

    # GitHub
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_TOKEN: str = ""
    GITHUB_TIMEOUT: float = 15.0

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    def get_cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    def get_storage_access_modes(self) -> List[str]:
        return [mode.strip() for mode in self.STORAGE_ACCESS_MODES.split(",") if mode.strip()]

    def get_namespace_required_annotations(self) -> List[str]:
        return [
            name.strip()
            for name in self.NAMESPACE_REQUIRED_ANNOTATIONS.split(",")
            if name.strip()
        ]


settings = Settings()
