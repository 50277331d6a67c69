"""Synchronous event bus and the session's event store.

The state machine, the backup store and the orchestrator publish here.  Two
kinds of subscriber exist: the :class:`EventStore`, which keeps every event
for the JSON session report, and the console dashboard, which prints state
changes and restores while a cycle is still running.

Dispatch happens on the publishing thread.  A subscriber that raises is
logged and skipped; the repair cycle never sees the error.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence

from netrepair.domain.events import DomainEvent

logger = logging.getLogger(__name__)

Handler = Callable[[DomainEvent], None]


# ===================================================================== #
#  Event Bus                                                             #
# ===================================================================== #

class EventBus:
    """Thread-safe pub-sub keyed by event class.

    A handler subscribed to a class also receives events of its subclasses,
    so ``subscribe(DomainEvent, h)`` is the same as ``subscribe_all(h)``.
    Handlers run in the order they subscribed.

    Usage::

        bus = EventBus()
        bus.subscribe(StateChanged, dashboard.on_state_changed)
        bus.subscribe_all(store.append)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: list[tuple[type[DomainEvent], Handler]] = []

    def subscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        """Deliver events of *event_type* (or a subclass) to *handler*."""
        with self._lock:
            self._subscriptions.append((event_type, handler))

    def subscribe_all(self, handler: Handler) -> None:
        """Deliver every published event to *handler*."""
        self.subscribe(DomainEvent, handler)

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            matching = [h for t, h in self._subscriptions if isinstance(event, t)]
        for handler in matching:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event handler %r failed on %s", handler, type(event).__name__
                )


# ===================================================================== #
#  Event Store                                                           #
# ===================================================================== #

class EventStore:
    """Append-only record of one session's events, for the session report."""

    def __init__(self) -> None:
        self._events: list[DomainEvent] = []
        self._lock = threading.Lock()

    def append(self, event: DomainEvent) -> None:
        with self._lock:
            self._events.append(event)

    def query(
        self,
        event_type: type[DomainEvent] | None = None,
        limit: int = 0,
    ) -> Sequence[DomainEvent]:
        """Events in publish order, optionally of one class and only the last *limit*."""
        with self._lock:
            events = list(self._events)
        if event_type is not None:
            events = [e for e in events if isinstance(e, event_type)]
        return events[-limit:] if limit > 0 else events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
