"""
JSON-patch style overrides applied to a synthesized workload.

Only the operations the workload overrides need are supported: ``add``,
``replace`` and ``remove`` over JSON pointers into dicts and lists.
"""
import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence

CONTAINER_PATH = "/spec/template/spec/containers/0"
POST_START_PATH = f"{CONTAINER_PATH}/lifecycle/postStart"
PRE_STOP_PATH = f"{CONTAINER_PATH}/lifecycle/preStop"
REQUESTS_PATH = f"{CONTAINER_PATH}/resources/requests"
LIMITS_PATH = f"{CONTAINER_PATH}/resources/limits"


@dataclass(frozen=True)
class PatchOp:
    op: str  # 'add', 'replace', 'remove'
    path: str
    value: Any = None


class PatchError(ValueError):
    pass


def _split(path: str) -> List[str]:
    if not path.startswith("/"):
        raise PatchError(f"Invalid JSON pointer: {path}")
    return [part.replace("~1", "/").replace("~0", "~") for part in path[1:].split("/")]


def _index(container: list, token: str, allow_end: bool) -> int:
    if token == "-" and allow_end:
        return len(container)
    try:
        index = int(token)
    except ValueError:
        raise PatchError(f"Invalid list index: {token}")
    upper = len(container) if allow_end else len(container) - 1
    if index < 0 or index > upper:
        raise PatchError(f"List index out of range: {token}")
    return index


def _apply_one(document: Any, op: PatchOp) -> None:
    *parents, last = _split(op.path)
    target = document
    for token in parents:
        if isinstance(target, list):
            target = target[_index(target, token, allow_end=False)]
        elif isinstance(target, dict) and token in target:
            target = target[token]
        else:
            raise PatchError(f"Path does not exist: {op.path}")

    if op.op == "add":
        if isinstance(target, list):
            target.insert(_index(target, last, allow_end=True), copy.deepcopy(op.value))
        else:
            target[last] = copy.deepcopy(op.value)
    elif op.op == "replace":
        if isinstance(target, list):
            target[_index(target, last, allow_end=False)] = copy.deepcopy(op.value)
        elif last in target:
            target[last] = copy.deepcopy(op.value)
        else:
            raise PatchError(f"Cannot replace missing member: {op.path}")
    elif op.op == "remove":
        if isinstance(target, list):
            del target[_index(target, last, allow_end=False)]
        elif last in target:
            del target[last]
        else:
            raise PatchError(f"Cannot remove missing member: {op.path}")
    else:
        raise PatchError(f"Unsupported patch operation: {op.op}")


def apply_patches(document: Dict[str, Any], ops: Sequence[PatchOp]) -> Dict[str, Any]:
    """Return a patched deep copy of ``document``."""
    patched = copy.deepcopy(document)
    for op in ops:
        _apply_one(patched, op)
    return patched


def _shell_hook(command: str) -> Dict[str, Any]:
    return {"exec": {"command": ["/bin/sh", "-c", command]}}


def workload_overrides(
    post_start: str = None,
    pre_stop: str = None,
    requests: Dict[str, str] = None,
    limits: Dict[str, str] = None,
) -> List[PatchOp]:
    """
    Patch operations for the optional per-deployment overrides.

    Absent overrides produce no operations.
    """
    ops = []
    if post_start:
        ops.append(PatchOp("add", POST_START_PATH, _shell_hook(post_start)))
    if pre_stop:
        ops.append(PatchOp("add", PRE_STOP_PATH, _shell_hook(pre_stop)))
    if requests:
        ops.append(PatchOp("add", REQUESTS_PATH, dict(requests)))
    if limits:
        ops.append(PatchOp("add", LIMITS_PATH, dict(limits)))
    return ops
