"""Notification service — deliver flow events to UI subscribers.

Each subscriber owns a bounded queue. Events are pushed to every queue
at emission time, so subscribers see them in emission order. A full
queue drops the event rather than stalling the flow that emitted it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contract_checkout.notifications.events import FlowEvent

logger = logging.getLogger(__name__)

_SUBSCRIBER_BUFFER = 100


class NotificationService:
    """Fan-out of :class:`FlowEvent` objects to per-view queues.

    Usage::

        svc = NotificationService()
        q = svc.add_subscriber("checkout-view")
        svc.notify(StepEvent(project_id=7, step="DRAW"))
        event = q.get_nowait()
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, asyncio.Queue[FlowEvent]] = {}
        self._last: FlowEvent | None = None

    @property
    def subscribers(self) -> list[str]:
        return list(self._subscribers)

    @property
    def last_event(self) -> FlowEvent | None:
        """Most recent event, for views that mount mid-flow."""
        return self._last

    def add_subscriber(
        self, key: str, *, buffer: int = _SUBSCRIBER_BUFFER
    ) -> asyncio.Queue[FlowEvent]:
        """Register a subscriber and return its queue."""
        q: asyncio.Queue[FlowEvent] = asyncio.Queue(maxsize=buffer)
        self._subscribers[key] = q
        return q

    def remove_subscriber(self, key: str) -> None:
        """Unregister a subscriber (views call this on teardown)."""
        self._subscribers.pop(key, None)

    def notify(self, event: FlowEvent) -> None:
        """Push *event* to every subscriber."""
        self._last = event
        for key, q in list(self._subscribers.items()):
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Subscriber %s queue full, dropping %s event", key, event.type)
