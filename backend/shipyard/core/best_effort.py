"""
Best-effort execution of side effects whose failure must never propagate.

Check run updates, namespace deletion during teardown and cleanup deletes
all go through here so the policy is visible at the call site.
"""
import logging
from typing import Awaitable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def best_effort(description: str, operation: Awaitable[T]) -> Optional[T]:
    """
    Await an operation, logging and discarding any exception.

    Args:
        description: Human readable name used in the log line
        operation: Awaitable to run

    Returns:
        The operation's result, or None if it raised
    """
    try:
        return await operation
    except Exception as e:
        logger.warning(f"Best-effort operation failed ({description}): {e}")
        return None
