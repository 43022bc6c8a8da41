"""Progress channel from the sync flows to any number of listeners.

Delivery is synchronous and fire-and-forget: there is no acknowledgment
or backpressure, and a failing listener never affects the flow or the
other listeners.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable

from .models import AppEvent, AppStage

logger = logging.getLogger(__name__)

EventListener = Callable[[AppEvent], None]


class ProgressChannel:
    """Fan-out of ``AppEvent`` records."""

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register *listener*.  Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: AppEvent) -> None:
        if event.stage == AppStage.ERROR:
            logger.warning("%s: %s", event.message, event.error or "")
        else:
            logger.info("[%s] %s", event.stage.value, event.message)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Progress listener failed")

    def publish(
        self,
        stage: AppStage,
        message: str,
        progress: int | None = None,
        error: str | None = None,
        **payload,
    ) -> AppEvent:
        """Build an ``AppEvent`` and emit it."""
        event = AppEvent(
            stage=stage,
            message=message,
            progress=progress,
            error=error,
            **payload,
        )
        self.emit(event)
        return event


class EventLog:
    """Bounded history of emitted events, newest last."""

    def __init__(self, maxlen: int = 200) -> None:
        self._events: deque[AppEvent] = deque(maxlen=maxlen)

    def __call__(self, event: AppEvent) -> None:
        self._events.append(event)

    def __len__(self) -> int:
        return len(self._events)

    def recent(self, limit: int | None = None) -> list[AppEvent]:
        events = list(self._events)
        return events[-limit:] if limit else events

    def stages(self) -> list[AppStage]:
        return [e.stage for e in self._events]

    def clear(self) -> None:
        self._events.clear()
