"""Publish/subscribe primitives used to propagate chat state to views."""

import logging
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventChannel(Generic[T]):
    """Delivers published values to subscribers, synchronously and in order."""

    def __init__(self, name: str = ""):
        self.name = name
        self._subscribers: List[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register callback. Returns a function that removes it again."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, value: T) -> None:
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:
                # One broken view must not starve the others
                logger.exception(f"[EVENTS] Subscriber of '{self.name}' failed")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


class ObservableValue(Generic[T]):
    """A value whose changes are published on a channel."""

    def __init__(self, initial: T, name: str = ""):
        self._value = initial
        self.changes: EventChannel[T] = EventChannel(name)

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> bool:
        """Update the value. Returns True if it changed."""
        if value == self._value:
            return False
        self._value = value
        self.changes.publish(value)
        return True

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        return self.changes.subscribe(callback)
