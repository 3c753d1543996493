"""Multi-subscriber event channels for monitor notifications."""

import logging
import threading
from typing import Callable, Generic, List, TypeVar

from tokemon.error_handling import report_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

Dispatcher = Callable[[Callable[[], None]], None]


def inline_dispatcher(task: Callable[[], None]) -> None:
    """Run the delivery on the calling (cycle) thread."""
    task()


class EventChannel(Generic[T]):
    """
    Named event with any number of subscribers.

    ``publish`` hands one delivery task to the dispatcher; the task calls every
    subscriber in registration order. A failing subscriber is reported and
    does not stop delivery to the others.
    """

    def __init__(self, name: str, dispatcher: Dispatcher = inline_dispatcher) -> None:
        self.name = name
        self.dispatcher = dispatcher
        self._subscribers: List[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """
        Register a subscriber. Duplicate callbacks are ignored.

        Returns:
            A function that removes the subscription.
        """
        with self._lock:
            if callback not in self._subscribers:
                self._subscribers.append(callback)
                logger.debug(f"Registered subscriber for {self.name}")
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Callable[[T], None]) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, payload: T) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        if not subscribers:
            return

        def deliver() -> None:
            for callback in subscribers:
                try:
                    callback(payload)
                except Exception as e:
                    report_error(
                        exception=e,
                        component="events",
                        context_name="subscriber_error",
                        context_data={"event": self.name},
                    )

        self.dispatcher(deliver)
