from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass


LOGGER = logging.getLogger(__name__)

REPORT_CREATED = "report.created"
DISASTER_COMPLETED = "disaster.completed"


@dataclass(frozen=True)
class Event:
    type: str
    data: dict


class EventBus:
    """In-process fan-out of domain events to bounded subscriber queues.

    A full queue drops its oldest event so publishers never block on a slow
    consumer.
    """

    def __init__(self, *, maxsize: int = 200) -> None:
        self._lock = asyncio.Lock()
        self._maxsize = maxsize
        self._subscribers: set[asyncio.Queue[Event]] = set()
        self.dropped = 0

    async def subscribe(self) -> asyncio.Queue[Event]:
        queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=self._maxsize)
        async with self._lock:
            self._subscribers.add(queue)
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[Event]) -> None:
        async with self._lock:
            self._subscribers.discard(queue)

    async def publish(self, event: Event) -> int:
        async with self._lock:
            subscribers = list(self._subscribers)
        for queue in subscribers:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                dropped = queue.get_nowait()
                self.dropped += 1
                LOGGER.warning("event queue full, dropped %s", dropped.type)
                queue.put_nowait(event)
        return len(subscribers)
