"""Page-visibility event sources the tracker can subscribe to."""

from __future__ import annotations

import logging
from typing import Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

VisibilityListener = Callable[[bool], None]


@runtime_checkable
class Subscription(Protocol):
    """Handle returned by a subscription; unsubscribing twice is a no-op."""

    def unsubscribe(self) -> None:
        """Stop delivering events to the listener."""


@runtime_checkable
class VisibilityEventSource(Protocol):
    """Delivers ``hidden`` booleans whenever the test page is hidden or shown."""

    def subscribe(self, listener: VisibilityListener) -> Subscription:
        """Register a listener and return its handle."""


class _BusSubscription:
    def __init__(self, bus: "VisibilityEventBus", listener: VisibilityListener) -> None:
        self._bus = bus
        self._listener = listener
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._bus._remove(self._listener)


class VisibilityEventBus:
    """In-process visibility source fed by the host application."""

    def __init__(self) -> None:
        self._listeners: list[VisibilityListener] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: VisibilityListener) -> Subscription:
        self._listeners.append(listener)
        return _BusSubscription(self, listener)

    def _remove(self, listener: VisibilityListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            logger.debug("listener already removed from visibility bus")

    def publish(self, hidden: bool) -> None:
        """Deliver a visibility transition to every current subscriber."""
        for listener in list(self._listeners):
            listener(hidden)
