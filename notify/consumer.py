from __future__ import annotations

import asyncio
import logging

from events.bus import DISASTER_COMPLETED, REPORT_CREATED, Event, EventBus
from notify.fanout import NotificationFanout


LOGGER = logging.getLogger(__name__)

HANDLED_EVENTS = frozenset({REPORT_CREATED, DISASTER_COMPLETED})


async def run_notification_consumer(
    bus: EventBus, queue: asyncio.Queue[Event], fanout: NotificationFanout
) -> None:
    """Drain ``queue`` (already subscribed to ``bus``) into the fan-out.

    Failures are logged per event; the write that published the event has
    already been committed.
    """
    try:
        while True:
            event = await queue.get()
            if event.type not in HANDLED_EVENTS:
                continue
            try:
                await asyncio.to_thread(fanout.handle, event)
            except Exception:
                LOGGER.exception(
                    "notification fan-out failed for %s %s",
                    event.type,
                    event.data.get("disaster_id"),
                )
    finally:
        await bus.unsubscribe(queue)
