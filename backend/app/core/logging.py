"""
Structured logging for Modality Ingest.

Every log line is a structlog event. Development gets a colored console
renderer; production gets one JSON object per line so ingestion and
audit events can be shipped to a log store as-is.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

SERVICE_NAME = "modality-ingest"


def add_service_name(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Tag every event with the emitting service."""
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _processors(json_logs: bool) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_service_name,
    ]
    if json_logs:
        chain += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        chain.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return chain


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    log_file: str | None = None,
) -> None:
    """
    Configure stdlib logging and structlog.

    Args:
        log_level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render events as JSON lines instead of console output
        log_file: Also write events to this file
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(format="%(message)s", level=level, handlers=handlers, force=True)

    structlog.configure(
        processors=_processors(json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, usually named after the calling module."""
    return structlog.get_logger(name)


class AuditLogger:
    """
    Audit trail of writes to patient-linked records.

    Records one entry per processed acquisition notification so that every
    created patient, study, series or image can be traced back to its source.
    """

    def __init__(self):
        self.logger = get_logger("audit")

    def log_ingestion(
        self,
        source: str,
        identifiers: dict[str, Any],
        created: list[str],
        success: bool = True,
        error_kind: str | None = None,
    ) -> None:
        """
        Log an ingestion event.

        Args:
            source: Delivery channel (e.g., "webhook", "cli")
            identifiers: Identifying fields of the notification
            created: Entity kinds newly created by this notification
            success: Whether the notification was ingested
            error_kind: Error kind if ingestion failed
        """
        emit = self.logger.info if success else self.logger.warning
        emit(
            "acquisition_ingested",
            source=source,
            study_instance_uid=identifiers.get("studyInstanceId"),
            sop_instance_uid=identifiers.get("sopInstanceId"),
            accession_number=identifiers.get("accessionNumber"),
            created=created,
            success=success,
            error_kind=error_kind,
            audit_type="ingestion",
        )

    def log_replay(self, path: str, repeat: int) -> None:
        """Log a manual replay of a stored payload."""
        self.logger.info("payload_replayed", path=path, repeat=repeat, audit_type="replay")


audit_logger = AuditLogger()
