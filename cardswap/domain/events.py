"""Domain event dispatch."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, DefaultDict, Iterable, Mapping

logger = logging.getLogger(__name__)

EventPayload = Mapping[str, Any]
EventListener = Callable[[EventPayload], Awaitable[None]]

OFFER_PUBLISHED = "swap.offer.published"
OFFER_CANCELLED = "swap.offer.cancelled"
TRADE_COMPLETED = "swap.trade.completed"
RECONCILIATION_NEEDED = "swap.reconciliation.needed"


@dataclass(slots=True)
class Event:
    name: str
    payload: EventPayload


class EventBus:
    """Simple async pub-sub used by the swap services."""

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, list[EventListener]] = defaultdict(list)

    def subscribe(self, event_name: str, listener: EventListener) -> None:
        self._listeners[event_name].append(listener)

    async def publish(self, event_name: str, payload: EventPayload) -> None:
        for listener in list(self._listeners.get(event_name, ())):
            await listener(payload)

    async def publish_quietly(self, event_name: str, payload: EventPayload) -> None:
        """Publish after a state change has already been committed.

        Listener failures are logged; they cannot undo the change that
        triggered the event.
        """
        try:
            await self.publish(event_name, payload)
        except Exception:
            logger.exception("Listener for '%s' failed.", event_name)

    def clear(self) -> None:
        self._listeners.clear()

    def listeners(self, event_name: str) -> Iterable[EventListener]:
        return tuple(self._listeners.get(event_name, ()))
