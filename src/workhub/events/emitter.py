"""Sinks for hub events.

Workflows, discovery and the caches call ``emit`` on whatever sink they
were given. A sink must never break its caller, so CompositeEventEmitter
isolates each child and the logging sink only ever writes a record.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from src.workhub.events.models import EventType, HubEvent


logger = logging.getLogger(__name__)

# Anything not listed logs at INFO.
_LEVELS: Dict[EventType, int] = {
    EventType.STEP_FAILED: logging.ERROR,
    EventType.WORKFLOW_FAILED: logging.ERROR,
    EventType.CACHE_REFRESH_FAILED: logging.WARNING,
    EventType.DISCOVERY_ITEM_FAILED: logging.WARNING,
    EventType.CACHE_REFRESHED: logging.DEBUG,
    EventType.DISCOVERY_COMPLETED: logging.DEBUG,
}


class EventEmitter(ABC):
    """Destination for HubEvents."""

    @abstractmethod
    async def emit(self, event: HubEvent) -> None:
        """Publish one event."""

    async def close(self) -> None:
        """Release anything the sink holds open."""


class LoggingEventEmitter(EventEmitter):
    """Writes each event as one log record with the event fields in ``extra``.

    Failures log at ERROR or WARNING, cache refreshes and discovery summaries
    at DEBUG, and workflow progress at INFO.
    """

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger

    async def emit(self, event: HubEvent) -> None:
        self._logger.log(
            _LEVELS.get(event.event_type, logging.INFO),
            "Hub event: %s for %s",
            event.event_type.value,
            event.subject,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Fans events out to several sinks.

    A child that raises is logged and skipped; the remaining children still
    receive the event.
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self.emitters: List[EventEmitter] = list(emitters or [])

    async def emit(self, event: HubEvent) -> None:
        for child in self.emitters:
            try:
                await child.emit(event)
            except Exception as exc:
                logger.error(
                    "Event sink %s failed",
                    type(child).__name__,
                    extra={"event_type": event.event_type.value, "error": str(exc)},
                )

    async def close(self) -> None:
        for child in self.emitters:
            try:
                await child.close()
            except Exception as exc:
                logger.error(
                    "Closing event sink %s failed: %s", type(child).__name__, exc
                )


class NullEventEmitter(EventEmitter):
    async def emit(self, event: HubEvent) -> None:
        return None


class RecordingEventEmitter(EventEmitter):
    """Keeps emitted events in order, for tests and debugging endpoints."""

    def __init__(self) -> None:
        self.events: List[HubEvent] = []

    async def emit(self, event: HubEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> List[HubEvent]:
        return [event for event in self.events if event.event_type == event_type]
