"""
Tests for the event dispatcher and the deployment event handlers.
"""
from unittest.mock import MagicMock, patch

import pytest

from shipyard.core.events import (
    BuildQueuedEvent,
    DeploymentStatusChangedEvent,
    EventDispatcher,
)


class TestEventDispatcher:
    """Tests for the in-process dispatcher."""

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers(self):
        dispatcher = EventDispatcher()
        seen = []

        def sync_handler(event):
            seen.append(("sync", event.deployment_id))

        async def async_handler(event):
            seen.append(("async", event.deployment_id))

        dispatcher.register(BuildQueuedEvent, sync_handler)
        dispatcher.register(BuildQueuedEvent, async_handler)

        await dispatcher.dispatch_async(BuildQueuedEvent(deployment_id=4, app_id=1))

        assert seen == [("sync", 4), ("async", 4)]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self):
        dispatcher = EventDispatcher()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        def working(event):
            seen.append(event.event_type)

        dispatcher.register(BuildQueuedEvent, broken)
        dispatcher.register(BuildQueuedEvent, working)

        await dispatcher.dispatch_async(BuildQueuedEvent(deployment_id=1, app_id=1))

        assert seen == ["BuildQueuedEvent"]

    @pytest.mark.asyncio
    async def test_unregister(self):
        dispatcher = EventDispatcher()
        seen = []

        def handler(event):
            seen.append(event)

        dispatcher.register(BuildQueuedEvent, handler)
        dispatcher.unregister(BuildQueuedEvent, handler)

        await dispatcher.dispatch_async(BuildQueuedEvent(deployment_id=1, app_id=1))

        assert seen == []


class TestStatusChangedHandler:
    """A transition that frees a build slot drains the queue."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("old,new", [
        ("BUILDING", "DEPLOYING"),
        ("BUILDING", "ERROR"),
        ("BUILDING", "STOPPED"),
        ("DEPLOYING", "COMPLETE"),
    ])
    async def test_slot_releasing_transitions_drain(self, old, new):
        from shipyard.core.event_handlers import on_deployment_status_changed

        with patch("shipyard.services.task_dispatcher.task_dispatcher") as dispatcher:
            await on_deployment_status_changed(
                DeploymentStatusChangedEvent(deployment_id=1, app_id=1, old_status=old, new_status=new)
            )

        dispatcher.dispatch_build_queue_drain.assert_called_once_with()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("old,new", [
        ("PENDING", "BUILDING"),
        ("QUEUED", "BUILDING"),
        ("PENDING", "QUEUED"),
        ("PENDING", "CANCELLED"),
    ])
    async def test_other_transitions_do_not_drain(self, old, new):
        from shipyard.core.event_handlers import on_deployment_status_changed

        with patch("shipyard.services.task_dispatcher.task_dispatcher") as dispatcher:
            await on_deployment_status_changed(
                DeploymentStatusChangedEvent(deployment_id=1, app_id=1, old_status=old, new_status=new)
            )

        dispatcher.dispatch_build_queue_drain.assert_not_called()


class TestSetStatus:
    """Tests for the shared status transition helper."""

    @pytest.mark.asyncio
    async def test_unchanged_status_dispatches_nothing(self):
        from shipyard.models.deployment import Deployment
        from shipyard.services.deployment.transitions import set_status

        from conftest import FakeDeploymentRepo

        repo = FakeDeploymentRepo()
        repo.add(Deployment(id=1, app_id=1, config_id=1, secret="s", status="BUILDING"))

        with patch("shipyard.services.deployment.transitions.event_dispatcher") as dispatcher:
            dispatcher.dispatch_async = MagicMock()
            await set_status(repo, 1, "BUILDING")

        dispatcher.dispatch_async.assert_not_called()

    @pytest.mark.asyncio
    async def test_changed_status_dispatches_event(self):
        from unittest.mock import AsyncMock

        from shipyard.models.deployment import Deployment
        from shipyard.services.deployment.transitions import set_status

        from conftest import FakeDeploymentRepo

        repo = FakeDeploymentRepo()
        repo.add(Deployment(id=1, app_id=2, config_id=1, secret="s", status="BUILDING"))

        with patch("shipyard.services.deployment.transitions.event_dispatcher") as dispatcher:
            dispatcher.dispatch_async = AsyncMock()
            deployment = await set_status(repo, 1, "DEPLOYING")

        assert deployment.status == "DEPLOYING"
        event = dispatcher.dispatch_async.await_args.args[0]
        assert (event.app_id, event.old_status, event.new_status) == (2, "BUILDING", "DEPLOYING")
