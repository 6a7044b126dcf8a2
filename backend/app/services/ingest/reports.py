"""Pending report placeholder per study."""

from app.core.config import IngestSettings, get_settings
from app.models.report import ReportStatus
from app.services.ingest.diagnostics import DiagnosticLog
from app.services.ingest.resolver import ResolvedEntity, resolve_or_create
from app.services.ingest.store import EntityKind, PersistenceStore


class ReportInitializer:
    """Ensure exactly one report row exists for a study.

    The placeholder is created in ``PENDING`` state; later status changes
    belong to the reporting workflow and are never touched here.
    """

    def __init__(self, store: PersistenceStore, settings: IngestSettings | None = None):
        self.store = store
        self.settings = settings or get_settings().ingest

    async def ensure_placeholder(
        self, study_id: int, modality: str, diagnostics: DiagnosticLog
    ) -> ResolvedEntity:
        report = await resolve_or_create(
            self.store,
            EntityKind.REPORT,
            study_id,
            lambda: {
                "study_id_fk": study_id,
                "radiologist_id": None,
                "impression": self.settings.report_impression,
                "findings": self.settings.report_findings,
                "technique": self.settings.report_technique.format(modality=modality),
                "clinical_history": self.settings.report_clinical_history,
                "status": ReportStatus.PENDING,
            },
            diagnostics,
        )
        if report.created:
            diagnostics.info(
                "report_placeholder_created",
                "Pending report placeholder created",
                study_id=study_id,
                report_id=report.id,
            )
        else:
            diagnostics.debug(
                "report_placeholder_exists", "Study already has a report", study_id=study_id
            )
        return report
