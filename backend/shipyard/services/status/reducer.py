"""
Folds watch events into immutable snapshots and combines the three
snapshots of an app into an AppStatus.
"""
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple

from shipyard.schemas.status import AppStatus, PodStatus, StatefulSetStatus, WarningEvent
from shipyard.services.cluster.client import WatchEvent

MAX_EVENTS = 15


@dataclass(frozen=True)
class Snapshot:
    items: Tuple[Dict[str, Any], ...] = ()
    resource_version: Optional[str] = None


def _uid(obj: Dict[str, Any]) -> Optional[str]:
    return (obj.get("metadata") or {}).get("uid")


def seed(items: Iterable[Dict[str, Any]], resource_version: Optional[str]) -> Snapshot:
    return Snapshot(items=tuple(items), resource_version=resource_version)


def reduce(snapshot: Snapshot, event: WatchEvent) -> Snapshot:
    """
    Apply one watch event.

    ADDED and MODIFIED replace the object with the same UID or append it;
    DELETED removes it. Unknown event types leave the snapshot unchanged.
    """
    obj = event.object
    uid = _uid(obj)
    version = (obj.get("metadata") or {}).get("resourceVersion") or snapshot.resource_version
    others = tuple(item for item in snapshot.items if _uid(item) != uid)

    if event.type in ("ADDED", "MODIFIED"):
        if len(others) == len(snapshot.items):
            items = snapshot.items + (obj,)
        else:
            items = tuple(obj if _uid(item) == uid else item for item in snapshot.items)
    elif event.type == "DELETED":
        items = others
    else:
        return snapshot
    return replace(snapshot, items=items, resource_version=version)


def _condition(pod: Dict[str, Any], condition: str) -> bool:
    for cond in (pod.get("status") or {}).get("conditions") or []:
        if cond.get("type") == condition:
            return cond.get("status") == "True"
    return False


def _pod_failed(pod: Dict[str, Any], container: Dict[str, Any]) -> bool:
    if (pod.get("status") or {}).get("phase") == "Failed":
        return True
    waiting = (container.get("state") or {}).get("waiting") or {}
    return waiting.get("reason") in ("CrashLoopBackOff", "ErrImagePull", "ImagePullBackOff")


def pod_status(pod: Dict[str, Any], deployment_label: str) -> PodStatus:
    meta = pod.get("metadata") or {}
    status = pod.get("status") or {}
    containers = status.get("containerStatuses") or [{}]
    container = containers[0]
    deployment_id = (meta.get("labels") or {}).get(deployment_label)
    return PodStatus(
        id=meta.get("uid"),
        name=meta.get("name"),
        deployment_id=int(deployment_id) if deployment_id and deployment_id.isdigit() else None,
        node=(pod.get("spec") or {}).get("nodeName"),
        created_at=meta.get("creationTimestamp"),
        started_at=status.get("startTime"),
        phase=status.get("phase"),
        scheduled=_condition(pod, "PodScheduled"),
        ready=_condition(pod, "Ready"),
        failed=_pod_failed(pod, container),
        image=container.get("image"),
        container_ready=bool(container.get("ready")),
        container_state=container.get("state") or {},
        last_state=container.get("lastState") or {},
        ip=status.get("podIP"),
    )


def statefulset_status(statefulset: Dict[str, Any]) -> StatefulSetStatus:
    spec = statefulset.get("spec") or {}
    status = statefulset.get("status") or {}
    meta = statefulset.get("metadata") or {}
    return StatefulSetStatus(
        replicas=spec.get("replicas") or 0,
        ready_replicas=status.get("readyReplicas") or 0,
        updated_replicas=status.get("updatedReplicas") or 0,
        current_replicas=status.get("currentReplicas") or 0,
        generation=meta.get("generation"),
        observed_generation=status.get("observedGeneration"),
        current_revision=status.get("currentRevision"),
        update_revision=status.get("updateRevision"),
    )


def _event_time(event: Dict[str, Any]) -> str:
    return event.get("lastTimestamp") or event.get("eventTime") or event.get("firstTimestamp") or ""


def warning_events(events: Iterable[Dict[str, Any]]) -> List[WarningEvent]:
    """The most recent warnings, newest first."""
    newest = sorted(events, key=_event_time, reverse=True)[:MAX_EVENTS]
    return [
        WarningEvent(
            reason=event.get("reason"),
            message=event.get("message"),
            count=event.get("count"),
            first_timestamp=event.get("firstTimestamp"),
            last_timestamp=event.get("lastTimestamp"),
        )
        for event in newest
    ]


def app_status(
    pods: Snapshot,
    statefulsets: Snapshot,
    events: Snapshot,
    app_name: str,
    deployment_label: str,
) -> AppStatus:
    pod_statuses = [pod_status(pod, deployment_label) for pod in pods.items]
    statefulset = next(
        (s for s in statefulsets.items if (s.get("metadata") or {}).get("name") == app_name),
        None,
    )
    return AppStatus(
        total_pods=len(pod_statuses),
        ready_pods=sum(1 for p in pod_statuses if p.ready),
        scheduled_pods=sum(1 for p in pod_statuses if p.scheduled),
        failed_pods=sum(1 for p in pod_statuses if p.failed),
        pods=pod_statuses,
        statefulset=statefulset_status(statefulset) if statefulset else None,
        events=warning_events(events.items),
    )
