"""In-process event bus for review sessions."""

from collections import deque
from collections.abc import Callable

import structlog

from order_review.events.types import EventType, ReviewEvent

logger = structlog.get_logger(__name__)

EventHook = Callable[[ReviewEvent], None]


class EventBus:
    """Delivers events to registered hooks and keeps the most recent ones.

    Usage:
        bus = EventBus()
        bus.add_event_hook(lambda event: print(event.to_dict()))
        bus.publish(some_event)
    """

    def __init__(self, buffer_size: int = 100):
        self._event_buffer: deque[ReviewEvent] = deque(maxlen=buffer_size)
        self._event_hooks: list[EventHook] = []
        self._logger = logger.bind(component="event_bus")

    @property
    def recent_events(self) -> list[ReviewEvent]:
        """Get recently published events."""
        return list(self._event_buffer)

    def events_of(self, event_type: EventType) -> list[ReviewEvent]:
        return [event for event in self._event_buffer if event.event_type is event_type]

    def add_event_hook(self, hook: EventHook) -> None:
        """Add a hook to be called for every event.

        Hooks are called synchronously in registration order.
        """
        self._event_hooks.append(hook)

    def remove_event_hook(self, hook: EventHook) -> None:
        """Remove an event hook."""
        if hook in self._event_hooks:
            self._event_hooks.remove(hook)

    def publish(self, event: ReviewEvent) -> None:
        """Buffer an event and hand it to every hook.

        A failing hook is logged and does not stop delivery to the others.
        """
        self._event_buffer.append(event)
        for hook in self._event_hooks:
            try:
                hook(event)
            except Exception as e:
                self._logger.error(
                    "event_hook_error", event_type=event.event_type.value, error=str(e)
                )
