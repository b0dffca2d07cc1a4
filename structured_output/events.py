"""Diagnostic sinks that receive events from the repair engine and sessions."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .models import DiagnosticEvent

LOGGER = logging.getLogger(__name__)

EventSink = Callable[[DiagnosticEvent], None]

_WARNING_KINDS = {"attempt.failed"}
_ERROR_KINDS = {"session.exhausted", "session.timeout", "generator.failed"}


class LoggingSink:
    """Forward events to a standard library logger."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or LOGGER

    def __call__(self, event: DiagnosticEvent) -> None:
        if event.kind in _ERROR_KINDS:
            level = logging.ERROR
        elif event.kind in _WARNING_KINDS:
            level = logging.WARNING
        elif event.kind.startswith("repair.") or event.kind == "session.state":
            level = logging.DEBUG
        else:
            level = logging.INFO
        prefix = f"[attempt {event.attempt}] " if event.attempt is not None else ""
        self.logger.log(level, "%s%s | %s", prefix, event.kind, event.message)


class CollectingSink:
    """Keep every event in memory, in emission order."""

    def __init__(self) -> None:
        self.events: List[DiagnosticEvent] = []

    def __call__(self, event: DiagnosticEvent) -> None:
        self.events.append(event)

    def kinds(self) -> List[str]:
        return [event.kind for event in self.events]

    def of_kind(self, kind: str) -> List[DiagnosticEvent]:
        return [event for event in self.events if event.kind == kind]


class NullSink:
    def __call__(self, event: DiagnosticEvent) -> None:
        return None


def resolve_sink(sink: Optional[EventSink]) -> EventSink:
    return sink if sink is not None else LoggingSink()
