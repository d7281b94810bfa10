"""
Telemetry hooks for filesystem operations.

Events are fire-and-forget: a failing sink is logged and ignored so it
never changes the outcome of a read or search.
"""

import logging
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)


class TelemetrySink(Protocol):
    """Receives event records (operation name plus sizes, timings, counts)."""

    def capture(self, event: str, properties: dict[str, Any]) -> None:
        """Record one event."""
        ...


class LoggingTelemetry:
    """Default sink that writes events to the debug log."""

    def capture(self, event: str, properties: dict[str, Any]) -> None:
        logger.debug(f"telemetry {event}: {properties}")


class RecordingTelemetry:
    """Sink that keeps events in memory, for inspection in tests and tools."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def capture(self, event: str, properties: dict[str, Any]) -> None:
        self.events.append((event, dict(properties)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def capture(sink: Optional[TelemetrySink], event: str, **properties: Any) -> None:
    """Send an event to ``sink``, swallowing any error the sink raises."""
    if sink is None:
        return
    try:
        sink.capture(event, properties)
    except Exception as e:
        logger.debug(f"Telemetry sink failed for {event}: {e}")
