"""In-process pub/sub bus connecting the overlay, governor and presentation."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

EventHandler = Callable[[Any], None]

INVESTIGATION_TRIGGER = "investigation.trigger"
OVERLAY_CLOSED = "overlay.closed"
CHAT_INJECT = "chat.inject"
TOGGLES_CHANGED = "toggles.changed"


class EventBus:
    """Synchronous event bus, confined to the loop that owns it.

    Handlers run in subscription order on the emitting call stack. A handler
    may unsubscribe itself (or others) while an emit is in flight; the change
    takes effect on the next emit.
    """

    def __init__(self) -> None:
        self._subscribers: defaultdict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: EventHandler) -> None:
        if handler not in self._subscribers[topic]:
            self._subscribers[topic].append(handler)

    def unsubscribe(self, topic: str, handler: EventHandler) -> None:
        if handler in self._subscribers[topic]:
            self._subscribers[topic].remove(handler)

    def subscribers(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    def emit(self, topic: str, payload: Any) -> None:
        for handler in list(self._subscribers.get(topic, ())):
            handler(payload)
