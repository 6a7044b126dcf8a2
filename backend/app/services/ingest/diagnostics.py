"""Structured diagnostic events collected during one ingestion.

The pipeline records what it decided (defaults applied, entities reused,
races resolved) into a ``DiagnosticLog`` that travels with the outcome.
Boundaries forward the events to structlog with ``emit_diagnostics``.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from app.core.logging import get_logger

if TYPE_CHECKING:
    from app.services.ingest.outcome import Outcome

logger = get_logger(__name__)

LEVELS = ("debug", "info", "warning", "error")


@dataclass(frozen=True)
class DiagnosticEvent:
    """One decision or notable condition."""

    name: str
    level: str
    message: str
    fields: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "level": self.level,
            "message": self.message,
            "fields": self.fields,
            "timestamp": self.timestamp.isoformat(),
        }


class DiagnosticLog:
    """Append-only list of diagnostic events for a single notification."""

    def __init__(self) -> None:
        self._events: list[DiagnosticEvent] = []

    def record(self, name: str, message: str, level: str = "info", **fields: Any) -> None:
        if level not in LEVELS:
            raise ValueError(f"Unknown diagnostic level: {level}")
        self._events.append(DiagnosticEvent(name=name, level=level, message=message, fields=fields))

    def debug(self, name: str, message: str, **fields: Any) -> None:
        self.record(name, message, "debug", **fields)

    def info(self, name: str, message: str, **fields: Any) -> None:
        self.record(name, message, "info", **fields)

    def warning(self, name: str, message: str, **fields: Any) -> None:
        self.record(name, message, "warning", **fields)

    def error(self, name: str, message: str, **fields: Any) -> None:
        self.record(name, message, "error", **fields)

    @property
    def events(self) -> list[DiagnosticEvent]:
        return list(self._events)

    def names(self) -> list[str]:
        return [event.name for event in self._events]

    def __iter__(self) -> Iterator[DiagnosticEvent]:
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)


def emit_diagnostics(outcome: "Outcome", **context: Any) -> None:
    """Forward an outcome's diagnostic events to the application log."""
    bound = logger.bind(
        study_instance_uid=outcome.identifiers.get("studyInstanceId"),
        sop_instance_uid=outcome.identifiers.get("sopInstanceId"),
        **context,
    )
    for event in outcome.diagnostics:
        log_method = getattr(bound, event.level)
        log_method(event.name, detail=event.message, **event.fields)
