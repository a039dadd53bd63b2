"""Domain event bus fanning out core events to subscribers and sinks."""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Protocol

from p2p_lending.config import EventConfig
from p2p_lending.models.base import Event
from p2p_lending.models.lending import EventType

logger = logging.getLogger(__name__)

EventHandler = Callable[[Event], None]


class EventSink(Protocol):
    """Anything that accepts published records by topic."""

    def send(self, topic: str, record: Any, key: str | None = None) -> None: ...

    def flush(self) -> None: ...

    def close(self) -> None: ...


@dataclass
class DeliveryStats:
    """Track event delivery statistics."""

    published: int = 0
    delivered: int = 0
    failed: int = 0


class EventBus:
    """Publish domain events to in-process subscribers and external sinks.

    Delivery failures are logged and counted but never raised: a failed
    notification must not undo the state transition that produced it.

    Parameters
    ----------
    config : EventConfig | None
        Topic naming, source and history size configuration.
    sinks : list[EventSink] | None
        Sinks receiving every event (Kafka, JSON file, console).
    clock : Callable[[], datetime] | None
        Time source for event timestamps.
    """

    def __init__(
        self,
        config: EventConfig | None = None,
        sinks: list[EventSink] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or EventConfig()
        self.clock = clock or datetime.now
        self.stats = DeliveryStats()
        self._sinks: list[EventSink] = list(sinks or [])
        self._subscribers: dict[str | None, list[EventHandler]] = {}
        self._history: deque[Event] = deque(maxlen=max(0, self.config.history_size))
        self._lock = threading.Lock()

    def add_sink(self, sink: EventSink) -> None:
        """Attach a sink that receives every published event."""
        self._sinks.append(sink)

    def subscribe(self, handler: EventHandler, event_type: EventType | str | None = None) -> None:
        """Register a handler for one event type, or for all events when None."""
        key = event_type.value if isinstance(event_type, EventType) else event_type
        self._subscribers.setdefault(key, []).append(handler)

    def emit(
        self,
        event_type: EventType,
        subject: str,
        data: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        """Build an event envelope and publish it."""
        event = Event(
            event_id=uuid.uuid4().hex,
            event_type=event_type.value,
            event_time=self.clock(),
            source=self.config.source,
            subject=subject,
            data=data,
            metadata=metadata or {},
        )
        self.publish(event)
        return event

    def publish(self, event: Event) -> None:
        """Deliver an event to all matching subscribers and every sink."""
        with self._lock:
            self.stats.published += 1
            self._history.append(event)

        topic = self.config.topic_for(event.event_type)
        handlers = self._subscribers.get(event.event_type, []) + self._subscribers.get(None, [])

        for handler in handlers:
            self._deliver(event, lambda h=handler: h(event), target=getattr(handler, "__name__", "handler"))

        for sink in self._sinks:
            self._deliver(
                event,
                lambda s=sink: s.send(topic, event, key=event.subject),
                target=type(sink).__name__,
            )

    def _deliver(self, event: Event, call: Callable[[], None], target: str) -> None:
        try:
            call()
        except Exception:
            with self._lock:
                self.stats.failed += 1
            logger.exception(
                "Delivery of %s for %s to %s failed",
                event.event_type,
                event.subject,
                target,
                extra={"loan_id": event.subject, "event_type": event.event_type},
            )
        else:
            with self._lock:
                self.stats.delivered += 1

    def events(
        self,
        event_type: EventType | None = None,
        subject: str | None = None,
    ) -> list[Event]:
        """Return recently published events, optionally filtered by type and subject.

        Only the last ``EventConfig.history_size`` events are retained.
        """
        with self._lock:
            history = list(self._history)
        return [
            event
            for event in history
            if (event_type is None or event.event_type == event_type.value)
            and (subject is None or event.subject == subject)
        ]

    def flush(self) -> None:
        """Flush all sinks."""
        for sink in self._sinks:
            sink.flush()

    def close(self) -> None:
        """Flush and close all sinks."""
        for sink in self._sinks:
            sink.close()
        logger.info(
            "Event bus closed: published=%d, delivered=%d, failed=%d",
            self.stats.published,
            self.stats.delivered,
            self.stats.failed,
        )
