"""
API tests using FastAPI's TestClient with services replaced by mocks.

The app is assembled from the v1 router and the exception handlers rather
than imported from main, so no database or cluster is needed.
"""
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from shipyard.api import deps
from shipyard.api.v1.router import api_router
from shipyard.core.database import get_db
from shipyard.core.exception_handlers import register_exception_handlers
from shipyard.core.exceptions import (
    AppNotFoundError,
    DeploymentNotFoundError,
    InvalidStatusReportError,
    StatusWatchError,
)
from shipyard.core.security import sign_payload
from shipyard.models.deployment import Deployment
from shipyard.models.deployment_config import DeploymentConfig
from shipyard.models.deployment_log import DeploymentLog
from shipyard.schemas.status import AppStatus
from shipyard.services.app_teardown import TeardownResult
from shipyard.services.deployment.config_types import ImageConfig
from shipyard.services.deployment.state_machine import GitOptions

from conftest import make_app

API_KEY = {"X-API-Key": "test-api-key"}
WEBHOOK_SECRET = "test-webhook-secret"


def deployment(deployment_id=1, status="COMPLETE", source="IMAGE"):
    config = DeploymentConfig(id=100 + deployment_id, app_type="workload", source=source, image_tag="nginx:1.27")
    d = Deployment(id=deployment_id, app_id=1, config_id=config.id, secret="s", status=status)
    d.config = config
    return d


@pytest.fixture
def services():
    return {
        "deployments": AsyncMock(),
        "webhooks": AsyncMock(),
        "teardown": AsyncMock(),
        "watcher": MagicMock(),
        "logs": AsyncMock(),
    }


@pytest.fixture
def client(services):
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api/v1")

    async def override_db():
        yield AsyncMock()

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[deps.get_deployment_service] = lambda: services["deployments"]
    app.dependency_overrides[deps.get_webhook_service] = lambda: services["webhooks"]
    app.dependency_overrides[deps.get_teardown_service] = lambda: services["teardown"]
    app.dependency_overrides[deps.get_status_watcher] = lambda: services["watcher"]
    app.dependency_overrides[deps.get_log_ingest_service] = lambda: services["logs"]
    return TestClient(app)


@pytest.fixture
def app_repo():
    with patch("shipyard.api.v1.endpoints.apps.AppRepository") as repo_cls:
        repo = repo_cls.return_value
        repo.get_by_id_or_raise = AsyncMock(return_value=make_app())
        yield repo


class TestStatusReport:
    """POST /deployments/report"""

    def test_report_accepted(self, client, services):
        response = client.post("/api/v1/deployments/report", json={"secret": "abc", "status": "BUILDING"})

        assert response.status_code == 204
        services["deployments"].report.assert_awaited_once_with("abc", "BUILDING")

    def test_unknown_secret(self, client, services):
        services["deployments"].report.side_effect = DeploymentNotFoundError()

        response = client.post("/api/v1/deployments/report", json={"secret": "abc", "status": "BUILDING"})

        assert response.status_code == 404

    def test_invalid_status(self, client, services):
        services["deployments"].report.side_effect = InvalidStatusReportError(1, "COMPLETE")

        response = client.post("/api/v1/deployments/report", json={"secret": "abc", "status": "COMPLETE"})

        assert response.status_code == 400
        assert response.json()["error_type"] == "InvalidStatusReportError"

    def test_empty_secret_is_rejected(self, client):
        response = client.post("/api/v1/deployments/report", json={"secret": "", "status": "BUILDING"})

        assert response.status_code == 422


class TestDeployments:
    """GET /deployments/{id} and its logs"""

    def test_requires_api_key(self, client):
        assert client.get("/api/v1/deployments/1").status_code == 403

    def test_get_deployment(self, client):
        with patch("shipyard.api.v1.endpoints.deployments.DeploymentRepository") as repo_cls:
            repo_cls.return_value.get_by_id_or_raise = AsyncMock(return_value=deployment())

            response = client.get("/api/v1/deployments/1", headers=API_KEY)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "COMPLETE"
        assert body["source"] == "IMAGE"
        assert body["image_tag"] == "nginx:1.27"

    def test_logs_page_with_cursor(self, client):
        now = datetime(2026, 10, 18, tzinfo=timezone.utc)
        logs = [
            DeploymentLog(id=11, deployment_id=1, type="BUILD", stream="stdout", content="step 1", timestamp=now),
            DeploymentLog(id=12, deployment_id=1, type="BUILD", stream="stderr", content="oops", timestamp=now),
        ]
        with patch("shipyard.api.v1.endpoints.deployments.DeploymentRepository") as repo_cls, \
                patch("shipyard.api.v1.endpoints.deployments.DeploymentLogRepository") as log_repo_cls:
            repo_cls.return_value.get_by_id_or_raise = AsyncMock(return_value=deployment())
            log_repo_cls.return_value.list_for_deployment = AsyncMock(return_value=logs)

            response = client.get("/api/v1/deployments/1/logs?after=10&type=BUILD", headers=API_KEY)

        assert response.status_code == 200
        body = response.json()
        assert [line["content"] for line in body["logs"]] == ["step 1", "oops"]
        assert body["next_cursor"] == 12
        log_repo_cls.return_value.list_for_deployment.assert_awaited_once_with(
            1, type="BUILD", after_id=10, limit=500
        )

    def test_empty_logs_keep_cursor(self, client):
        with patch("shipyard.api.v1.endpoints.deployments.DeploymentRepository") as repo_cls, \
                patch("shipyard.api.v1.endpoints.deployments.DeploymentLogRepository") as log_repo_cls:
            repo_cls.return_value.get_by_id_or_raise = AsyncMock(return_value=deployment())
            log_repo_cls.return_value.list_for_deployment = AsyncMock(return_value=[])

            response = client.get("/api/v1/deployments/1/logs?after=40", headers=API_KEY)

        assert response.json()["next_cursor"] == 40


class TestApps:
    """Deployments, redeploys and deletion under /apps"""

    def test_create_image_deployment(self, client, services, app_repo):
        services["deployments"].create.return_value = deployment(status="COMPLETE")

        response = client.post(
            "/api/v1/apps/1/deployments",
            json={"config": {"source": "IMAGE", "port": 80, "image_tag": "nginx:1.27"}},
            headers=API_KEY,
        )

        assert response.status_code == 201
        call = services["deployments"].create.await_args
        assert isinstance(call.args[2], ImageConfig)
        assert call.args[2].workload.port == 80
        assert call.kwargs["git"] == GitOptions(check_run=True)

    def test_create_rejects_bad_config(self, client, app_repo):
        response = client.post(
            "/api/v1/apps/1/deployments",
            json={"config": {"source": "IMAGE", "port": 0, "image_tag": "nginx"}},
            headers=API_KEY,
        )

        assert response.status_code == 422

    def test_create_for_unknown_app(self, client, app_repo):
        app_repo.get_by_id_or_raise.side_effect = AppNotFoundError("9")

        response = client.post(
            "/api/v1/apps/9/deployments",
            json={"config": {"source": "HELM", "url": "https://charts.example.com/redis.tgz"}},
            headers=API_KEY,
        )

        assert response.status_code == 404

    def test_list_deployments(self, client, app_repo):
        with patch("shipyard.api.v1.endpoints.apps.DeploymentRepository") as repo_cls:
            repo_cls.return_value.list_for_app = AsyncMock(return_value=([deployment(2), deployment(1)], 2))

            response = client.get("/api/v1/apps/1/deployments?page=1&size=10", headers=API_KEY)

        body = response.json()
        assert response.status_code == 200
        assert [item["id"] for item in body["items"]] == [2, 1]
        assert body["total"] == 2

    def test_redeploy(self, client, services):
        services["deployments"].redeploy.return_value = deployment(3)

        response = client.post("/api/v1/apps/1/redeploy", headers=API_KEY)

        assert response.status_code == 201
        assert response.json()["id"] == 3
        services["deployments"].redeploy.assert_awaited_once_with(1)

    def test_delete_app(self, client, services):
        services["teardown"].delete_app.return_value = TeardownResult(
            app_id=1, namespace_deleted=False, app_group_deleted=True
        )

        response = client.delete("/api/v1/apps/1?keep_namespace=true", headers=API_KEY)

        assert response.status_code == 200
        assert response.json() == {"app_id": 1, "namespace_deleted": False, "app_group_deleted": True}
        services["teardown"].delete_app.assert_awaited_once_with(1, keep_namespace=True)


class TestStatusStream:
    """GET /apps/{id}/status"""

    def test_streams_status_updates(self, client, services, app_repo):
        async def observe(app, on_update, cancel_event):
            await on_update(AppStatus(total_pods=1, ready_pods=0))
            await on_update(AppStatus(total_pods=1, ready_pods=1))

        services["watcher"].observe = observe

        response = client.get("/api/v1/apps/1/status", headers=API_KEY)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = [line for line in response.text.split("\n\n") if line.startswith("data: ")]
        assert [json.loads(e[len("data: "):])["ready_pods"] for e in events] == [0, 1]

    def test_watch_failure_ends_with_error_event(self, client, services, app_repo):
        async def observe(app, on_update, cancel_event):
            raise StatusWatchError("pods", "500 Internal Server Error")

        services["watcher"].observe = observe

        response = client.get("/api/v1/apps/1/status", headers=API_KEY)

        assert "event: error" in response.text
        assert "Internal Server Error" in response.text

    def test_helm_apps_are_rejected(self, client, app_repo):
        app = make_app()
        app.config = DeploymentConfig(app_type="helm", source="HELM", helm_url="https://charts/x.tgz")
        app_repo.get_by_id_or_raise.return_value = app

        response = client.get("/api/v1/apps/1/status", headers=API_KEY)

        assert response.status_code == 400


class TestWebhooks:
    """POST /webhooks/github"""

    def post(self, client, payload, event="push", secret=WEBHOOK_SECRET, signature=None):
        body = json.dumps(payload).encode() if not isinstance(payload, bytes) else payload
        headers = {"X-GitHub-Event": event, "Content-Type": "application/json"}
        if secret is not None:
            headers["X-Hub-Signature-256"] = signature or sign_payload(body, secret)
        return client.post("/api/v1/webhooks/github", content=body, headers=headers)

    def test_signed_push_is_handled(self, client, services):
        services["webhooks"].handle.return_value = [7]

        response = self.post(client, {"ref": "refs/heads/main", "repository": {"id": 1}})

        assert response.status_code == 200
        assert response.json() == {"event": "push", "deployments": [7]}
        services["webhooks"].handle.assert_awaited_once_with(
            "push", {"ref": "refs/heads/main", "repository": {"id": 1}}
        )

    def test_missing_signature(self, client, services):
        response = self.post(client, {"zen": "hi"}, secret=None)

        assert response.status_code == 401
        services["webhooks"].handle.assert_not_awaited()

    def test_bad_signature(self, client, services):
        response = self.post(client, {"zen": "hi"}, secret="other-secret")

        assert response.status_code == 403
        services["webhooks"].handle.assert_not_awaited()

    def test_unconfigured_secret_rejects(self, client):
        with patch("shipyard.api.v1.endpoints.webhooks.settings") as mock_settings:
            mock_settings.GITHUB_WEBHOOK_SECRET = ""

            response = self.post(client, {"zen": "hi"})

        assert response.status_code == 403

    def test_signed_invalid_json(self, client):
        response = self.post(client, b"{not json")

        assert response.status_code == 400


class TestLogIngest:
    """POST /logs/ingest"""

    def test_runtime_logs(self, client, services):
        services["logs"].ingest.return_value = 2
        body = '{"log": "a"}\n{"log": "b"}\n'

        response = client.post(
            "/api/v1/logs/ingest?type=runtime&appId=1",
            content=body,
            auth=("shipyard", "ingest-secret"),
        )

        assert response.status_code == 200
        assert response.json() == {"stored": 2}
        services["logs"].ingest.assert_awaited_once_with(
            "runtime", "shipyard", "ingest-secret", body, app_id=1
        )

    def test_requires_credentials(self, client):
        response = client.post("/api/v1/logs/ingest?type=build", content="")

        assert response.status_code == 401
