"""Typed event envelopes delivered to the host."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from typing import Any

from demo_telephony.models import EventType

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Event:
    event_type: EventType
    payload: Any


EventSink = Callable[[Event], None]


class EventPublisher:
    """Fans each event out to the subscribed sinks, in subscription order.

    A failing sink is logged and skipped so the remaining sinks still see
    the event.
    """

    def __init__(self) -> None:
        self._sinks: list[EventSink] = []

    def subscribe(self, sink: EventSink) -> None:
        if sink not in self._sinks:
            self._sinks.append(sink)

    def unsubscribe(self, sink: EventSink) -> None:
        if sink in self._sinks:
            self._sinks.remove(sink)

    def publish(self, event_type: EventType, payload: Any) -> Event:
        event = Event(event_type=event_type, payload=payload)
        logger.debug("Publishing %s to %d sink(s)", event_type, len(self._sinks))
        for sink in list(self._sinks):
            try:
                sink(event)
            except Exception:
                logger.exception("Event sink %r failed on %s", sink, event_type)
        return event
