"""
Live status of an app, pushed from three cluster watches.

Pods, the app's StatefulSet and its warning Events are each listed once and
then watched. Every change is folded into that stream's snapshot and, once
all three have been seeded, a fresh AppStatus is handed to the caller. The
streams are independent, so an update may combine a newer pod view with an
older StatefulSet view.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from kubernetes_asyncio.client.rest import ApiException

from shipyard.core.exceptions import StatusWatchError
from shipyard.models.app import App
from shipyard.schemas.status import AppStatus
from shipyard.services.cluster.client import ClusterClient, error_status
from shipyard.services.cluster.labels import deployment_id_label
from shipyard.services.status.reducer import Snapshot, app_status, reduce, seed

logger = logging.getLogger(__name__)

EVENT_LIST_LIMIT = 15
WATCH_RESTART_DELAY = 1.0  # seconds

StatusCallback = Callable[[AppStatus], Awaitable[None]]


@dataclass(frozen=True)
class StreamSpec:
    name: str
    kind: str
    label_selector: Optional[str] = None
    field_selector: Optional[str] = None
    limit: Optional[int] = None


def stream_specs(app: App, label_domain: Optional[str] = None) -> Dict[str, StreamSpec]:
    return {
        "pods": StreamSpec("pods", "Pod", label_selector=deployment_id_label(label_domain)),
        "statefulset": StreamSpec(
            "statefulset", "StatefulSet", field_selector=f"metadata.name={app.name}"
        ),
        "events": StreamSpec(
            "events",
            "Event",
            field_selector=(
                f"involvedObject.kind=StatefulSet,involvedObject.name={app.name},type=Warning"
            ),
            limit=EVENT_LIST_LIMIT,
        ),
    }


class StatusWatcher:
    """
    Observes one app until cancelled or a watch fails.

    Args:
        cluster: Cluster client used for the lists and watches
        label_domain: Label domain, defaults to LABEL_DOMAIN
        restart_delay: Pause before re-opening a stream the server closed
    """

    def __init__(
        self,
        cluster: ClusterClient,
        label_domain: Optional[str] = None,
        restart_delay: float = WATCH_RESTART_DELAY,
    ):
        self.cluster = cluster
        self.label_domain = label_domain
        self.restart_delay = restart_delay

    async def observe(
        self,
        app: App,
        on_update: StatusCallback,
        cancel_event: asyncio.Event,
    ) -> None:
        """
        Run until ``cancel_event`` is set.

        Raises:
            StatusWatchError: When a watch fails; the other watches are
                stopped first
        """
        specs = stream_specs(app, self.label_domain)
        snapshots: Dict[str, Snapshot] = {}
        emit_lock = asyncio.Lock()
        deployment_label = deployment_id_label(self.label_domain)

        async def emit() -> None:
            async with emit_lock:
                if len(snapshots) < len(specs):
                    return
                await on_update(app_status(
                    snapshots["pods"],
                    snapshots["statefulset"],
                    snapshots["events"],
                    app.name,
                    deployment_label,
                ))

        async def run(spec: StreamSpec) -> None:
            try:
                await self._run_stream(app.namespace, spec, snapshots, emit)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                raise StatusWatchError(spec.name, str(e)) from e

        tasks = [asyncio.create_task(run(spec), name=f"watch-{spec.name}") for spec in specs.values()]
        cancel_task = asyncio.create_task(cancel_event.wait(), name="watch-cancel")
        logger.debug(f"Watching status of app {app.id} in {app.namespace}")

        try:
            done, _ = await asyncio.wait(tasks + [cancel_task], return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks + [cancel_task]:
                task.cancel()
            await asyncio.gather(*tasks, cancel_task, return_exceptions=True)

        if cancel_task in done:
            logger.debug(f"Stopped watching status of app {app.id}")
            return

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                error = task.exception()
                logger.error(f"Status watch for app {app.id} failed: {error}")
                raise error
        # A stream returned without error, which only happens on cancellation
        return

    async def _list(self, namespace: str, spec: StreamSpec) -> Snapshot:
        listed = await self.cluster.list_for_watch(
            spec.kind,
            namespace,
            label_selector=spec.label_selector,
            field_selector=spec.field_selector,
            limit=spec.limit,
        )
        return seed(listed.items, listed.resource_version)

    async def _run_stream(
        self,
        namespace: str,
        spec: StreamSpec,
        snapshots: Dict[str, Snapshot],
        emit: Callable[[], Awaitable[None]],
    ) -> None:
        snapshots[spec.name] = await self._list(namespace, spec)
        await emit()

        while True:
            try:
                async for event in self.cluster.watch(
                    spec.kind,
                    namespace,
                    snapshots[spec.name].resource_version,
                    label_selector=spec.label_selector,
                    field_selector=spec.field_selector,
                ):
                    snapshots[spec.name] = reduce(snapshots[spec.name], event)
                    await emit()
            except ApiException as e:
                if error_status(e) != 410:
                    raise
                # Resource version expired; start over from a fresh list
                logger.debug(f"Watch of {spec.name} in {namespace} expired, relisting")
                snapshots[spec.name] = await self._list(namespace, spec)
                await emit()
            # The server closed the stream; resume from the last version seen
            await asyncio.sleep(self.restart_delay)
