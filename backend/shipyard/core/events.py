"""
In-process domain events.

Services publish events after their database work; handlers in
`shipyard.core.event_handlers` react, usually by enqueueing a Celery task.
"""
import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, DefaultDict, List, Optional, Type

logger = logging.getLogger(__name__)

Handler = Callable[["DomainEvent"], Any]


@dataclass
class DomainEvent:
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def event_type(self) -> str:
        return self.__class__.__name__


@dataclass
class DeploymentCreatedEvent(DomainEvent):
    """A deployment row was persisted."""
    deployment_id: int = None
    app_id: int = None
    source: str = None


@dataclass
class DeploymentStatusChangedEvent(DomainEvent):
    """A deployment moved between statuses."""
    deployment_id: int = None
    app_id: int = None
    old_status: Optional[str] = None
    new_status: str = None


@dataclass
class BuildQueuedEvent(DomainEvent):
    """A build hit the concurrency ceiling and waits in the queue."""
    deployment_id: int = None
    app_id: int = None


class EventDispatcher:
    """
    Routes events to the handlers registered for their exact type.

    Handlers may be plain functions or coroutines. They run in registration
    order; one that raises is logged and skipped.
    """

    def __init__(self):
        self._handlers: DefaultDict[Type[DomainEvent], List[Handler]] = defaultdict(list)

    def register(self, event_type: Type[DomainEvent], handler: Handler) -> None:
        self._handlers[event_type].append(handler)
        logger.debug(f"Registered {handler.__name__} for {event_type.__name__}")

    def unregister(self, event_type: Type[DomainEvent], handler: Handler) -> None:
        self._handlers[event_type] = [h for h in self._handlers[event_type] if h != handler]

    async def dispatch_async(self, event: DomainEvent) -> None:
        handlers = list(self._handlers.get(type(event), ()))
        logger.debug(f"Dispatching {event.event_type} to {len(handlers)} handlers")

        for handler in handlers:
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Handler {handler.__name__} failed for {event.event_type}: {e}")


event_dispatcher = EventDispatcher()


def handles(event_type: Type[DomainEvent]):
    """Register the decorated function with the global dispatcher."""
    def decorator(func: Handler) -> Handler:
        event_dispatcher.register(event_type, func)
        return func
    return decorator
