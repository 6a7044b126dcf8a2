"""Identity resolution for the patient -> study -> series -> image hierarchy.

Each level goes through the same ``resolve_or_create`` protocol: look the
entity up by its unique key, insert it when absent, and treat a lost insert
race (unique-constraint conflict) as "found" by re-reading the winning row.
Levels are resolved strictly parent first, since each child row carries its
parent's internal id.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from app.models.study import StudyStatus
from app.services.ingest.diagnostics import DiagnosticLog
from app.services.ingest.errors import DependencyError, PersistenceError, UniqueConflict
from app.services.ingest.normalizer import NormalizedPayload
from app.services.ingest.store import EntityKind, PersistenceStore


@dataclass
class ResolvedEntity:
    """An entity located or created for the current notification."""

    kind: EntityKind
    id: int
    key: Any
    created: bool
    record: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"id": self.id, "key": self.key, "created": self.created}


@dataclass
class Resolution:
    """Progress of identity resolution; filled in level by level."""

    patient: ResolvedEntity | None = None
    study: ResolvedEntity | None = None
    series: ResolvedEntity | None = None
    image: ResolvedEntity | None = None

    def resolved(self) -> list[ResolvedEntity]:
        return [
            entity
            for entity in (self.patient, self.study, self.series, self.image)
            if entity is not None
        ]


async def resolve_or_create(
    store: PersistenceStore,
    kind: EntityKind,
    key: Any,
    build: Callable[[], dict[str, Any]],
    diagnostics: DiagnosticLog,
) -> ResolvedEntity:
    """Find the entity with ``key`` or insert the record produced by ``build``.

    At most one row is ever inserted per key: when a concurrent writer wins
    the insert, the conflict is converted into a read of its row.

    Raises:
        PersistenceError: If the store fails, or a conflicting row cannot be read back
    """
    existing = await store.find_by_key(kind, key)
    if existing is not None:
        diagnostics.debug(
            "entity_reused", f"Existing {kind.value} reused", entity_kind=kind.value, key=key
        )
        return ResolvedEntity(kind=kind, id=existing["id"], key=key, created=False, record=existing)

    record = build()
    try:
        entity_id = await store.insert(kind, record)
    except UniqueConflict:
        winner = await store.find_by_key(kind, key)
        if winner is None:
            raise PersistenceError(
                f"Insert of {kind.value} conflicted but no existing row was found",
                entity_kind=kind.value,
                key=key,
            )
        diagnostics.info(
            "entity_conflict_resolved",
            f"Concurrent insert of {kind.value} detected; using the stored row",
            entity_kind=kind.value,
            key=key,
        )
        return ResolvedEntity(kind=kind, id=winner["id"], key=key, created=False, record=winner)

    diagnostics.info(
        "entity_created", f"New {kind.value} created", entity_kind=kind.value, key=key
    )
    return ResolvedEntity(
        kind=kind, id=entity_id, key=key, created=True, record={**record, "id": entity_id}
    )


def _require_parent(
    parent: ResolvedEntity | None,
    parent_kind: EntityKind,
    child_kind: EntityKind,
    child_key: Any,
) -> ResolvedEntity:
    if parent is None:
        raise DependencyError(
            f"Cannot create {child_kind.value} without a resolved {parent_kind.value}",
            parent_kind=parent_kind.value,
            child_kind=child_kind.value,
            child_key=child_key,
        )
    return parent


class IdentityResolver:
    """Resolve every hierarchy level of a normalized notification."""

    def __init__(self, store: PersistenceStore):
        self.store = store

    async def resolve(
        self,
        payload: NormalizedPayload,
        diagnostics: DiagnosticLog,
        resolution: Resolution | None = None,
    ) -> Resolution:
        """Resolve patient, study, series and image in that order.

        ``resolution`` is updated in place so a caller still sees the
        levels that were committed before a failure.

        Raises:
            DependencyError: If a parent level is missing when a child must be created
            PersistenceError: If the store fails
        """
        resolution = resolution if resolution is not None else Resolution()
        resolution.patient = await self.resolve_patient(payload, diagnostics)
        resolution.study = await self.resolve_study(payload, resolution.patient, diagnostics)
        resolution.series = await self.resolve_series(payload, resolution.study, diagnostics)
        resolution.image = await self.resolve_image(payload, resolution.series, diagnostics)
        return resolution

    async def resolve_patient(
        self, payload: NormalizedPayload, diagnostics: DiagnosticLog
    ) -> ResolvedEntity | None:
        if payload.patient_id is None:
            diagnostics.warning(
                "patient_resolution_skipped",
                "Notification has no MRN; study is stored without a patient",
                study_instance_uid=payload.study_instance_uid,
            )
            return None

        return await resolve_or_create(
            self.store,
            EntityKind.PATIENT,
            payload.patient_id,
            lambda: {
                "mrn": payload.patient_id,
                "last_name": payload.patient_last_name,
                "first_name": payload.patient_first_name,
            },
            diagnostics,
        )

    async def resolve_study(
        self,
        payload: NormalizedPayload,
        patient: ResolvedEntity | None,
        diagnostics: DiagnosticLog,
    ) -> ResolvedEntity:
        patient_id = patient.id if patient is not None else None
        study = await resolve_or_create(
            self.store,
            EntityKind.STUDY,
            payload.study_instance_uid,
            lambda: {
                "study_instance_uid": payload.study_instance_uid,
                "patient_id_fk": patient_id,
                "accession_number": payload.accession_number,
                "study_date": payload.study_date,
                "modality": payload.modality,
                "study_description": payload.study_description,
                "body_part_examined": payload.body_part,
                "status": StudyStatus.COMPLETED,
                "num_series": 0,
                "num_instances": 0,
            },
            diagnostics,
        )

        if study.created or patient_id is None:
            return study

        stored_patient = study.record.get("patient_id_fk")
        if stored_patient is None:
            await self.store.update(EntityKind.STUDY, study.id, {"patient_id_fk": patient_id})
            study.record["patient_id_fk"] = patient_id
            diagnostics.info(
                "study_patient_attached",
                "Existing study without a patient linked to the resolved patient",
                study_id=study.id,
                patient_id=patient_id,
            )
        elif stored_patient != patient_id:
            diagnostics.warning(
                "study_patient_mismatch",
                "Study already belongs to a different patient; left unchanged",
                study_id=study.id,
                stored_patient_id=stored_patient,
                notified_patient_id=patient_id,
            )
        return study

    async def resolve_series(
        self,
        payload: NormalizedPayload,
        study: ResolvedEntity | None,
        diagnostics: DiagnosticLog,
    ) -> ResolvedEntity:
        # Checked before lookup: an orphan series must not be created
        parent = _require_parent(
            study, EntityKind.STUDY, EntityKind.SERIES, payload.series_instance_uid
        )
        series = await resolve_or_create(
            self.store,
            EntityKind.SERIES,
            payload.series_instance_uid,
            lambda: {
                "series_instance_uid": payload.series_instance_uid,
                "study_id_fk": parent.id,
                "modality": payload.modality,
                "series_description": payload.series_description,
                "series_number": payload.series_number,
                "num_instances": 0,
            },
            diagnostics,
        )
        if not series.created and series.record.get("study_id_fk") != parent.id:
            diagnostics.warning(
                "series_study_mismatch",
                "Series is stored under a different study; left unchanged",
                series_id=series.id,
                stored_study_id=series.record.get("study_id_fk"),
                notified_study_id=parent.id,
            )
        return series

    async def resolve_image(
        self,
        payload: NormalizedPayload,
        series: ResolvedEntity | None,
        diagnostics: DiagnosticLog,
    ) -> ResolvedEntity:
        parent = _require_parent(
            series, EntityKind.SERIES, EntityKind.IMAGE, payload.sop_instance_uid
        )
        image = await resolve_or_create(
            self.store,
            EntityKind.IMAGE,
            payload.sop_instance_uid,
            lambda: {
                "sop_instance_uid": payload.sop_instance_uid,
                "series_id_fk": parent.id,
                "instance_number": payload.instance_number,
                "storage_locator": payload.storage_locator,
                "byte_size": payload.byte_size,
                "transfer_syntax_uid": payload.transfer_syntax_uid,
            },
            diagnostics,
        )
        if not image.created and image.record.get("series_id_fk") != parent.id:
            diagnostics.warning(
                "image_series_mismatch",
                "Image is stored under a different series; left unchanged",
                image_id=image.id,
                stored_series_id=image.record.get("series_id_fk"),
                notified_series_id=parent.id,
            )
        return image
