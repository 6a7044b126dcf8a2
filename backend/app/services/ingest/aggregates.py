"""Derived counters of the imaging hierarchy.

Counters are always recomputed from the rows that exist, never
incremented, so a lost or repeated delivery cannot skew them. The
recount runs as one store call so that two workers attaching images to
the same study cannot overwrite each other with a stale count.
"""

from dataclasses import dataclass

from app.services.ingest.diagnostics import DiagnosticLog
from app.services.ingest.store import PersistenceStore


@dataclass
class StudyCounts:
    """Counters written back after an ingestion."""

    study_images: int
    study_series: int
    series_images: int


class AggregateMaintainer:
    """Recompute study and series counters after an image is attached."""

    def __init__(self, store: PersistenceStore):
        self.store = store

    async def refresh(
        self, study_id: int, series_id: int, diagnostics: DiagnosticLog
    ) -> StudyCounts:
        counts = StudyCounts(**await self.store.refresh_counters(study_id, series_id))
        diagnostics.debug(
            "image_count_recomputed",
            "Study and series counters recomputed",
            study_id=study_id,
            image_count=counts.study_images,
            series_count=counts.study_series,
            series_image_count=counts.series_images,
        )
        return counts
