"""
Minimal single-threaded publish/subscribe.

Observers are plain callables.  :meth:`Observable.subscribe` hands back a
:class:`Subscription` whose :meth:`~Subscription.cancel` removes the
observer again; there are no weak references and no implicit lifetimes.
"""

from __future__ import annotations

import logging
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    """Handle returned by :meth:`Observable.subscribe`."""

    def __init__(self, observable: "Observable", observer: Callable) -> None:
        self._observable = observable
        self._observer = observer
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop delivering values to the observer.  Safe to call twice."""
        if not self._active:
            return
        self._active = False
        self._observable._remove(self._observer)


class Observable(Generic[T]):
    """
    Fan-out of values to registered observers.

    Not thread-safe: publish only from the thread that owns the event loop.
    Values published from worker threads must be marshalled first
    (``loop.call_soon_threadsafe``).
    """

    def __init__(self) -> None:
        self._observers: List[Callable[[T], None]] = []

    def subscribe(self, observer: Callable[[T], None]) -> Subscription:
        self._observers.append(observer)
        return Subscription(self, observer)

    def publish(self, value: T) -> None:
        # Copy so observers may unsubscribe while being notified
        for observer in list(self._observers):
            observer(value)

    def clear(self) -> None:
        """Drop every observer."""
        self._observers.clear()

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def _remove(self, observer: Callable[[T], None]) -> None:
        try:
            self._observers.remove(observer)
        except ValueError:
            logger.debug("Observer %r was already removed.", observer)
