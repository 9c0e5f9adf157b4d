"""
Label keys stamped on everything the orchestrator creates in the cluster.
"""
from typing import Dict

from shipyard.core.config import settings

MANAGED_BY = "shipyard"


def label_key(name: str, domain: str = None) -> str:
    return f"{domain or settings.LABEL_DOMAIN}/{name}"


def app_group_id_label(domain: str = None) -> str:
    return label_key("app-group-id", domain)


def app_id_label(domain: str = None) -> str:
    return label_key("app-id", domain)


def deployment_id_label(domain: str = None) -> str:
    return label_key("deployment-id", domain)


def collect_logs_label(domain: str = None) -> str:
    return label_key("collect-logs", domain)


def build_job_label(domain: str = None) -> str:
    return label_key("build-job", domain)


def selector(labels: Dict[str, str]) -> str:
    """Render an equality label selector."""
    return ",".join(f"{key}={value}" for key, value in labels.items())
