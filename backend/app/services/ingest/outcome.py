"""Outcome of one ingestion and the reporter that assembles it.

The reporter is the only place that fires the downstream
``on_study_content_added`` event, and only when the notification created a
new study or a new image. A pure re-delivery never notifies.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.services.ingest.aggregates import StudyCounts
from app.services.ingest.diagnostics import DiagnosticEvent, DiagnosticLog
from app.services.ingest.errors import IngestError
from app.services.ingest.notifier import StudyContentNotifier
from app.services.ingest.resolver import Resolution, ResolvedEntity


@dataclass
class Outcome:
    """Structured result of ``ingest``."""

    success: bool
    identifiers: dict[str, Any]
    patient: ResolvedEntity | None = None
    study: ResolvedEntity | None = None
    series: ResolvedEntity | None = None
    image: ResolvedEntity | None = None
    report: ResolvedEntity | None = None
    image_count: int | None = None
    series_count: int | None = None
    error: IngestError | None = None
    notified: bool = False
    diagnostics: list[DiagnosticEvent] = field(default_factory=list)
    processed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_new_patient(self) -> bool:
        return self.patient is not None and self.patient.created

    @property
    def is_new_study(self) -> bool:
        return self.study is not None and self.study.created

    @property
    def is_new_series(self) -> bool:
        return self.series is not None and self.series.created

    @property
    def is_new_image(self) -> bool:
        return self.image is not None and self.image.created

    @property
    def report_created(self) -> bool:
        return self.report is not None and self.report.created

    @property
    def error_kind(self) -> str | None:
        return self.error.kind if self.error is not None else None

    def _entities(self) -> list[ResolvedEntity]:
        return [
            entity
            for entity in (self.patient, self.study, self.series, self.image, self.report)
            if entity is not None
        ]

    def created_entities(self) -> list[str]:
        """Kinds of entities this notification created."""
        return [entity.kind.value for entity in self._entities() if entity.created]

    def reused_entities(self) -> list[str]:
        """Kinds of entities that already existed."""
        return [entity.kind.value for entity in self._entities() if not entity.created]

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-ready dictionary."""

        def entity(value: ResolvedEntity | None) -> dict[str, Any] | None:
            return value.to_dict() if value is not None else None

        return {
            "success": self.success,
            "identifiers": self.identifiers,
            "patient": entity(self.patient),
            "study": entity(self.study),
            "series": entity(self.series),
            "image": entity(self.image),
            "report": entity(self.report),
            "is_new_study": self.is_new_study,
            "is_new_image": self.is_new_image,
            "image_count": self.image_count,
            "series_count": self.series_count,
            "created": self.created_entities(),
            "reused": self.reused_entities(),
            "notified": self.notified,
            "error": self.error.to_dict() if self.error is not None else None,
            "diagnostics": [event.to_dict() for event in self.diagnostics],
            "processed_at": self.processed_at.isoformat(),
        }


class OutcomeReporter:
    """Assemble outcomes and trigger the downstream notification.

    Whether to notify is decided from this attempt alone. When an earlier
    attempt committed a new image and then failed at a later step, the
    redelivery that completes it finds the image already stored, reports
    ``is_new_image=False`` and does not notify. The failed attempt never
    notified either, so downstream does not hear about that image through
    this event; it sees it with the next notification for the study.
    """

    def __init__(self, notifier: StudyContentNotifier, notify: bool = True):
        self.notifier = notifier
        self.notify = notify

    async def success(
        self,
        identifiers: dict[str, Any],
        resolution: Resolution,
        counts: StudyCounts,
        report: ResolvedEntity,
        diagnostics: DiagnosticLog,
    ) -> Outcome:
        outcome = Outcome(
            success=True,
            identifiers=identifiers,
            patient=resolution.patient,
            study=resolution.study,
            series=resolution.series,
            image=resolution.image,
            report=report,
            image_count=counts.study_images,
            series_count=counts.study_series,
        )

        if self.notify and outcome.study is not None and (
            outcome.is_new_study or outcome.is_new_image
        ):
            try:
                await self.notifier.on_study_content_added(outcome.study.id, outcome.is_new_study)
            except Exception as e:
                # Records are committed; a failed notification does not undo the ingestion
                diagnostics.error(
                    "notification_failed",
                    "Study content notification could not be delivered",
                    study_id=outcome.study.id,
                    error=str(e),
                )
            else:
                outcome.notified = True
                diagnostics.info(
                    "study_content_notified",
                    "Downstream notified of new study content",
                    study_id=outcome.study.id,
                    is_new_study=outcome.is_new_study,
                )

        outcome.diagnostics = diagnostics.events
        return outcome

    def failure(
        self,
        error: IngestError,
        identifiers: dict[str, Any],
        resolution: Resolution,
        diagnostics: DiagnosticLog,
    ) -> Outcome:
        diagnostics.error(
            "ingestion_failed",
            error.message,
            error_kind=error.kind,
            retryable=error.retryable,
            **error.context,
        )
        return Outcome(
            success=False,
            identifiers=identifiers,
            patient=resolution.patient,
            study=resolution.study,
            series=resolution.series,
            image=resolution.image,
            error=error,
            diagnostics=diagnostics.events,
        )
