"""Ingestion pipeline for acquisition notifications.

``IngestionPipeline.ingest`` runs one notification through
normalize -> resolve -> recount -> report placeholder -> outcome, and
returns an ``Outcome`` instead of raising for any ``IngestError``.
Levels committed before a failure stay committed so that a redelivery
resumes where the previous attempt stopped.
"""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import IngestSettings, get_settings
from app.services.ingest.aggregates import AggregateMaintainer
from app.services.ingest.diagnostics import DiagnosticLog
from app.services.ingest.errors import IngestError, ValidationError
from app.services.ingest.normalizer import PayloadNormalizer
from app.services.ingest.notifier import LoggingStudyNotifier, StudyContentNotifier
from app.services.ingest.outcome import Outcome, OutcomeReporter
from app.services.ingest.reports import ReportInitializer
from app.services.ingest.resolver import IdentityResolver, Resolution
from app.services.ingest.store import PersistenceStore, SqlAlchemyStore


class IngestionPipeline:
    """Reconcile acquisition notifications into the imaging hierarchy.

    The pipeline holds no state between notifications; everything shared
    lives in the store, so instances can be used concurrently.
    """

    def __init__(
        self,
        store: PersistenceStore,
        notifier: StudyContentNotifier | None = None,
        settings: IngestSettings | None = None,
        clock: Callable[[], datetime] | None = None,
        uid_factory: Callable[[str, datetime], str] | None = None,
    ):
        self.settings = settings or get_settings().ingest
        self.store = store
        self.normalizer = PayloadNormalizer(self.settings, clock=clock, uid_factory=uid_factory)
        self.resolver = IdentityResolver(store)
        self.aggregates = AggregateMaintainer(store)
        self.reports = ReportInitializer(store, self.settings)
        self.reporter = OutcomeReporter(
            notifier or LoggingStudyNotifier(),
            notify=self.settings.notify_on_new_content,
        )

    @classmethod
    def from_session_maker(
        cls,
        session_maker: async_sessionmaker[AsyncSession],
        notifier: StudyContentNotifier | None = None,
        settings: IngestSettings | None = None,
    ) -> "IngestionPipeline":
        """Build a pipeline persisting through SQLAlchemy."""
        return cls(SqlAlchemyStore(session_maker), notifier=notifier, settings=settings)

    async def ingest(self, payload: Any) -> Outcome:
        """Process one notification payload.

        Args:
            payload: JSON text, UTF-8 bytes or an already decoded mapping

        Returns:
            Outcome describing resolved entities, or the error that stopped
            processing
        """
        diagnostics = DiagnosticLog()
        resolution = Resolution()

        try:
            data = self.normalizer.decode(payload)
        except ValidationError as e:
            return self.reporter.failure(e, {}, resolution, diagnostics)

        normalized = self.normalizer.normalize(data, diagnostics)

        identifiers = normalized.identifiers()
        try:
            await self.resolver.resolve(normalized, diagnostics, resolution)
            counts = await self.aggregates.refresh(
                resolution.study.id, resolution.series.id, diagnostics
            )
            report = await self.reports.ensure_placeholder(
                resolution.study.id, normalized.modality, diagnostics
            )
        except IngestError as e:
            return self.reporter.failure(e, identifiers, resolution, diagnostics)

        return await self.reporter.success(identifiers, resolution, counts, report, diagnostics)
