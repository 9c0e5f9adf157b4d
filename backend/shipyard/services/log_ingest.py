"""
Ingestion of log lines shipped by the cluster logging operator.

Each request body is JSON lines; every line carries the pod's labels, from
which the deployment id is read. Lines for deployments the caller may not
write to are dropped.
"""
import json
import logging
import secrets
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shipyard.core.config import settings
from shipyard.core.exceptions import AuthorizationError, ValidationError
from shipyard.models.app import App
from shipyard.models.deployment import Deployment
from shipyard.models.deployment_log import DeploymentLog, LogStream, LogType
from shipyard.services.cluster.labels import deployment_id_label

logger = logging.getLogger(__name__)

BUILD_LOG_USERNAME = "shipyard-builder"


class LogIngestForbiddenError(AuthorizationError):
    def __init__(self):
        super().__init__("Invalid log ingest credentials")


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_lines(body: str, label_domain: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Parse JSON lines into log row values; lines without a deployment id are skipped.

    Raises:
        ValidationError: If a line is not valid JSON
    """
    label = deployment_id_label(label_domain)
    rows = []
    for line in body.splitlines():
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid log line: {e}")
        kubernetes = entry.get("kubernetes") or {}
        deployment_id = (kubernetes.get("labels") or {}).get(label)
        if not deployment_id or not str(deployment_id).isdigit():
            continue
        rows.append({
            "deployment_id": int(deployment_id),
            "content": entry.get("log") or entry.get("message") or line,
            "stream": LogStream.STDERR.value if entry.get("stream") == "stderr" else LogStream.STDOUT.value,
            "pod_name": kubernetes.get("pod_name"),
            "timestamp": _parse_time(entry.get("time")),
        })
    return rows


class LogIngestService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def ingest(
        self,
        log_type: str,
        username: str,
        password: str,
        body: str,
        app_id: Optional[int] = None,
    ) -> int:
        """
        Store shipped log lines.

        Returns:
            Number of lines stored

        Raises:
            LogIngestForbiddenError: If the credentials do not match
            ValidationError: If the type or app id is missing or invalid
        """
        if log_type == "build":
            if not settings.BUILD_LOG_INGEST_SECRET:
                raise ValidationError("Build log ingestion is not configured")
            if username != BUILD_LOG_USERNAME or not secrets.compare_digest(
                password, settings.BUILD_LOG_INGEST_SECRET
            ):
                raise LogIngestForbiddenError()
            stored_type = LogType.BUILD.value
        elif log_type == "runtime":
            if app_id is None:
                raise ValidationError("appId is required for runtime logs")
            app = (await self.db.execute(select(App).where(App.id == app_id))).scalar_one_or_none()
            if app is None or not secrets.compare_digest(password, app.log_ingest_secret):
                raise LogIngestForbiddenError()
            stored_type = LogType.RUNTIME.value
        else:
            raise ValidationError(f"Unknown log type: {log_type}")

        rows = parse_lines(body)
        if not rows:
            return 0

        query = select(Deployment.id).where(Deployment.id.in_({r["deployment_id"] for r in rows}))
        if stored_type == LogType.RUNTIME.value:
            query = query.where(Deployment.app_id == app_id)
        allowed = set((await self.db.execute(query)).scalars().all())

        stored = 0
        for row in rows:
            if row["deployment_id"] not in allowed:
                continue
            timestamp = row.pop("timestamp")
            log = DeploymentLog(type=stored_type, **row)
            if timestamp:
                log.timestamp = timestamp
            self.db.add(log)
            stored += 1
        await self.db.commit()
        logger.debug(f"Stored {stored}/{len(rows)} {stored_type} log lines")
        return stored
