"""Module implementing signals to abort in-flight client requests."""

import threading
from typing import List, Optional

from relayfs.events import Event, EventQueue


class AbortSignal:
    """
    Signal that aborts the client requests it is passed to once triggered.

    Aborting only stops the client from waiting for and consuming the response. If the
    relay already started executing the operation then it still runs to completion.
    """

    def __init__(self) -> None:
        """Instantiate a signal that hasn't been triggered yet."""
        self._lock = threading.Lock()
        self._aborted = False
        self._reason: Optional[str] = None
        self._listeners: List[EventQueue] = []

    @property
    def aborted(self) -> bool:
        """Whether abort() has been called."""
        with self._lock:
            return self._aborted

    @property
    def reason(self) -> Optional[str]:
        """Return the reason passed to abort(), if any."""
        with self._lock:
            return self._reason

    def abort(self, reason: Optional[str] = None) -> None:
        """Trigger the signal, aborting all requests waiting on it."""
        with self._lock:
            if self._aborted:
                return

            self._aborted = True
            self._reason = reason

            listeners = list(self._listeners)

        for events in listeners:
            events.notify(Event.ABORTED, reason)

    def subscribe(self, events: EventQueue) -> None:
        """Post an ABORTED event to the queue when the signal is triggered."""
        with self._lock:
            if not self._aborted:
                self._listeners.append(events)
                return

            reason = self._reason

        events.notify(Event.ABORTED, reason)

    def unsubscribe(self, events: EventQueue) -> None:
        """Stop posting events to the queue."""
        with self._lock:
            if events in self._listeners:
                self._listeners.remove(events)
