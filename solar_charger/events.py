"""In-process event bus between the controller and its observers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AmpereChanged:
    """The applied charging current changed."""

    previous: int
    current: int


ChargerEvent = AmpereChanged


class EventBus:
    """Fan-out of events to independent subscriber queues.

    Publishing never blocks: each subscriber owns an unbounded queue and
    drains it at its own pace.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[ChargerEvent]] = []

    def subscribe(self) -> asyncio.Queue[ChargerEvent]:
        """Return a new queue receiving every event published from now on."""
        queue: asyncio.Queue[ChargerEvent] = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ChargerEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, event: ChargerEvent) -> None:
        logger.debug("Publishing %s to %d subscribers", event, len(self._subscribers))
        for queue in self._subscribers:
            queue.put_nowait(event)
