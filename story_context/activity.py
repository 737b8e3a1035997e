"""Activity sinks: where assembly and generation report what they did.

The assembler and the generation backends never keep "last request" state of
their own. They write named events to an injected sink instead:

    LoggingActivitySink    — one structured log line per event (the default)
    RecordingActivitySink  — keeps events in memory; tests and debug views
                              read them back
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ActivitySink(Protocol):
    def record(self, event: str, **fields: Any) -> None: ...


class ActivityEvent(BaseModel):
    event: str
    fields: dict[str, Any] = Field(default_factory=dict)


class LoggingActivitySink:
    """Writes each event as `event key=value ...` on the activity logger."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    def record(self, event: str, **fields: Any) -> None:
        if not logger.isEnabledFor(self._level):
            return
        detail = " ".join(f"{k}={v!r}" for k, v in sorted(fields.items()))
        logger.log(self._level, "%s %s", event, detail, extra={"activity": event, "fields": fields})


class RecordingActivitySink:
    """Keeps every event in order."""

    def __init__(self) -> None:
        self.events: list[ActivityEvent] = []

    def record(self, event: str, **fields: Any) -> None:
        self.events.append(ActivityEvent(event=event, fields=fields))

    def names(self) -> list[str]:
        return [e.event for e in self.events]

    def last(self, event: str) -> ActivityEvent | None:
        """Most recent event with this name, or None."""
        for recorded in reversed(self.events):
            if recorded.event == event:
                return recorded
        return None

    def clear(self) -> None:
        self.events.clear()
