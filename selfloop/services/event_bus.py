"""
Event Bus
=========
Synchronous subscriber interface for loop lifecycle notifications.

Delivery rules:
    - Subscribers are called in subscription order.
    - Every subscriber receives every event; one subscriber raising is
      logged and never prevents delivery to the rest.
    - Emission never raises into the loop.
    - Event timestamps come from the injected clock (the runner passes its
      own), falling back to system UTC time if that clock fails.

Per tick the runner emits:
    tick_start → (error →) tick_failed | tick_passed → tick_complete
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from selfloop.models.loop_event import LoopEvent

logger = logging.getLogger(__name__)

Subscriber = Callable[[LoopEvent], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoopEventBus:
    """
    Fan-out of LoopEvents to registered callbacks.

    Usage:
        bus = LoopEventBus()
        unsubscribe = bus.subscribe(lambda event: print(event.kind))
        ...
        unsubscribe()
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or _utcnow
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(
        self,
        kind: str,
        iteration: int = 0,
        payload: Optional[Dict[str, Any]] = None,
    ) -> LoopEvent:
        event = LoopEvent(
            kind=kind,
            iteration=iteration,
            timestamp=self._timestamp(kind),
            payload=payload or {},
        )
        # Snapshot the list: a callback may unsubscribe itself
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber failed on %s (iteration %d)", kind, iteration)
        return event

    def _timestamp(self, kind: str) -> datetime:
        try:
            return self._clock()
        except Exception:
            logger.exception("Event clock failed on %s; using system time", kind)
            return _utcnow()

    def __len__(self) -> int:
        return len(self._subscribers)
