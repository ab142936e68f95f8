"""Event sinks for deployment lifecycle events."""

import asyncio
from typing import Protocol

from automaker.models.deployment import DeploymentEvent
from automaker.utils.logging import get_logger

logger = get_logger("events")


class EventSink(Protocol):
    """Anything that accepts deployment events."""

    async def publish(self, event: DeploymentEvent) -> None: ...


class NullEventSink:
    """Sink that discards every event, for headless runs."""

    async def publish(self, event: DeploymentEvent) -> None:
        return None


class EventBus:
    """Fan-out bus that delivers each event to every subscriber queue."""

    def __init__(self, max_queue_size: int = 1000):
        self._subscribers: set[asyncio.Queue[DeploymentEvent]] = set()
        self._max_queue_size = max_queue_size

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[DeploymentEvent]:
        """Register a new subscriber and return its queue."""
        queue: asyncio.Queue[DeploymentEvent] = asyncio.Queue(
            maxsize=self._max_queue_size
        )
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[DeploymentEvent]) -> None:
        """Remove a subscriber queue."""
        self._subscribers.discard(queue)

    async def publish(self, event: DeploymentEvent) -> None:
        """Publish an event to all subscribers."""
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                # A stalled subscriber loses events rather than blocking the pipeline
                logger.warning(
                    "events.subscriber_queue_full",
                    event_type=event.type.value,
                    deployment_id=event.deployment_id,
                )


# Singleton instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the event bus singleton."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
