"""
Module with utilities for waiting on events that are posted by other threads.

Some relayfs operations block on something that happens in another thread, like an
HTTP response arriving, an abort signal firing, or a tunnel process printing its public
URL. Rather than polling, these threads post events to a queue, and the waiting thread
asserts that the event it expects is the next one that happens:

def fetch(signal):
    q = EventQueue()

    # The worker posts RESPONSE, the signal posts ABORTED.
    signal.subscribe(q)
    start_thread(worker, q)

    response = q.expect(Event.RESPONSE)

If the signal fires first, expect() raises UnexpectedEvent with the actual event, which
the caller can turn into a more specific error. If a worker fails it posts an EXCEPTION
event instead and expect() re-raises that exception in the waiting thread.
"""

from __future__ import annotations

from enum import auto, Enum
import queue
from typing import Any, Optional, Tuple, Union


class Event(Enum):
    """Types of events."""

    # Client events
    RESPONSE = auto()
    ABORTED = auto()

    # Tunnel events
    URL_READ = auto()
    TUNNEL_EXIT = auto()

    # Shared events
    EXCEPTION = auto()


class UnexpectedEvent(Exception):
    """Exception raised when an event occurs that is not being waited upon."""

    def __init__(
        self,
        message: str,
        expected_event: Event,
        actual_event: Optional[Event],
        actual_value: Any,
    ) -> None:
        """Instantiate the exception with a description of what happened."""
        super().__init__(message, expected_event, actual_event, actual_value)

        self.message = message

        self.expected_event = expected_event
        self.actual_event = actual_event
        self.actual_value = actual_value


class EventQueue:
    """Thread-safe queue of events that can be notified of and waited upon."""

    def __init__(self) -> None:
        """Instantiate a new EventQueue."""
        self._queue: queue.Queue[Tuple[Event, Any]] = queue.Queue()

    def notify(self, event: Event, value: Any = None) -> None:
        """Post an event and any associated value to the queue."""
        self._queue.put((event, value))

    def exception(self, exception: Union[Exception, str]) -> None:
        """Post an exception event to the queue."""
        if isinstance(exception, Exception):
            self.notify(Event.EXCEPTION, exception)
        else:
            self.notify(Event.EXCEPTION, RuntimeError(exception))

    def expect(self, expected_event: Event, timeout: Optional[float] = None) -> Any:
        """
        Wait for the next event on the queue and check if it matches.

        If no event is posted within the timeout (in seconds) then UnexpectedEvent is
        raised with None as the actual event.
        """
        try:
            event, value = self._queue.get(timeout=timeout)
        except queue.Empty:
            raise UnexpectedEvent(
                f"expected {expected_event}, but timed out", expected_event, None, None
            )

        if event == expected_event:
            return value
        elif event == Event.EXCEPTION:
            raise value
        else:
            raise UnexpectedEvent(
                f"expected {expected_event}, but got {event}",
                expected_event,
                event,
                value,
            )
