"""Persistence interface used by the ingestion pipeline.

The pipeline talks to storage through a few primitives: ``find_by_key``,
``insert``, ``update``, ``count_children`` and ``refresh_counters``.
``SqlAlchemyStore`` implements them on an async SQLAlchemy session factory,
running each primitive in its own short transaction so that every level the
pipeline commits survives a later failure.
"""

from enum import Enum
from typing import Any, Protocol

from sqlalchemy import func, inspect, select, update
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.logging import get_logger
from app.models.base import Base
from app.models.image import Image
from app.models.patient import Patient
from app.models.report import Report
from app.models.series import Series
from app.models.study import Study
from app.services.ingest.errors import PersistenceError, UniqueConflict, ValidationError

logger = get_logger(__name__)


class EntityKind(str, Enum):
    """Entity kinds managed by the pipeline."""

    PATIENT = "patient"
    STUDY = "study"
    SERIES = "series"
    IMAGE = "image"
    REPORT = "report"


class PersistenceStore(Protocol):
    """Narrow CRUD primitives the pipeline depends on."""

    async def find_by_key(self, kind: EntityKind, key: Any) -> dict[str, Any] | None:
        """Return the row with the given unique key, or None."""
        ...

    async def insert(self, kind: EntityKind, record: dict[str, Any]) -> int:
        """Insert a row and return its id.

        Raises:
            UniqueConflict: If a row with the same unique key already exists
        """
        ...

    async def update(self, kind: EntityKind, entity_id: int, fields: dict[str, Any]) -> None:
        """Update columns of an existing row."""
        ...

    async def count_children(
        self, parent_kind: EntityKind, parent_id: int, child_kind: EntityKind
    ) -> int:
        """Count rows of ``child_kind`` under the given parent."""
        ...

    async def refresh_counters(self, study_id: int, series_id: int) -> dict[str, int]:
        """Recompute the derived counters of a study and one of its series.

        Must be atomic with respect to concurrent image inserts: the stored
        counters always match the rows committed when the call returns.

        Returns:
            ``study_images``, ``study_series`` and ``series_images``
        """
        ...


# Model and unique-key column per entity kind
ENTITY_MODELS: dict[EntityKind, tuple[type[Base], str]] = {
    EntityKind.PATIENT: (Patient, "mrn"),
    EntityKind.STUDY: (Study, "study_instance_uid"),
    EntityKind.SERIES: (Series, "series_instance_uid"),
    EntityKind.IMAGE: (Image, "sop_instance_uid"),
    EntityKind.REPORT: (Report, "study_id_fk"),
}


def _count_query(parent_kind: EntityKind, parent_id: int, child_kind: EntityKind):
    match (parent_kind, child_kind):
        case (EntityKind.PATIENT, EntityKind.STUDY):
            return select(func.count(Study.id)).where(Study.patient_id_fk == parent_id)
        case (EntityKind.STUDY, EntityKind.SERIES):
            return select(func.count(Series.id)).where(Series.study_id_fk == parent_id)
        case (EntityKind.STUDY, EntityKind.IMAGE):
            return (
                select(func.count(Image.id))
                .join(Series, Image.series_id_fk == Series.id)
                .where(Series.study_id_fk == parent_id)
            )
        case (EntityKind.STUDY, EntityKind.REPORT):
            return select(func.count(Report.id)).where(Report.study_id_fk == parent_id)
        case (EntityKind.SERIES, EntityKind.IMAGE):
            return select(func.count(Image.id)).where(Image.series_id_fk == parent_id)
    raise ValueError(f"Cannot count {child_kind.value} under {parent_kind.value}")


def _row_to_dict(row: Base) -> dict[str, Any]:
    return {attr.key: getattr(row, attr.key) for attr in inspect(row).mapper.column_attrs}


class SqlAlchemyStore:
    """PersistenceStore backed by an async SQLAlchemy session factory."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def find_by_key(self, kind: EntityKind, key: Any) -> dict[str, Any] | None:
        model, key_column = ENTITY_MODELS[kind]
        query = select(model).where(getattr(model, key_column) == key)
        try:
            async with self._session_maker() as session:
                row = (await session.execute(query)).scalar_one_or_none()
                return _row_to_dict(row) if row is not None else None
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to look up {kind.value}", entity_kind=kind.value, error=str(e)
            ) from e

    async def insert(self, kind: EntityKind, record: dict[str, Any]) -> int:
        model, key_column = ENTITY_MODELS[kind]
        entity = model(**record)
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    session.add(entity)
                    await session.flush()
                    entity_id = entity.id
        except IntegrityError as e:
            logger.debug(
                "Insert hit unique constraint",
                entity_kind=kind.value,
                key=record.get(key_column),
            )
            raise UniqueConflict(kind.value, record.get(key_column)) from e
        except DataError as e:
            raise ValidationError(
                f"Value rejected by the database for {kind.value}",
                entity_kind=kind.value,
                error=str(e),
            ) from e
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to insert {kind.value}", entity_kind=kind.value, error=str(e)
            ) from e
        return entity_id

    async def update(self, kind: EntityKind, entity_id: int, fields: dict[str, Any]) -> None:
        if not fields:
            return
        model, _ = ENTITY_MODELS[kind]
        statement = update(model).where(model.id == entity_id).values(**fields)
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    await session.execute(statement)
        except DataError as e:
            raise ValidationError(
                f"Value rejected by the database for {kind.value}",
                entity_kind=kind.value,
                entity_id=entity_id,
                error=str(e),
            ) from e
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to update {kind.value}",
                entity_kind=kind.value,
                entity_id=entity_id,
                error=str(e),
            ) from e

    async def count_children(
        self, parent_kind: EntityKind, parent_id: int, child_kind: EntityKind
    ) -> int:
        query = _count_query(parent_kind, parent_id, child_kind)
        try:
            async with self._session_maker() as session:
                return int((await session.execute(query)).scalar_one())
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to count {child_kind.value} under {parent_kind.value}",
                parent_id=parent_id,
                error=str(e),
            ) from e

    async def refresh_counters(self, study_id: int, series_id: int) -> dict[str, int]:
        series_images = (
            select(func.count(Image.id)).where(Image.series_id_fk == Series.id).scalar_subquery()
        )
        study_images = (
            select(func.count(Image.id))
            .join(Series, Image.series_id_fk == Series.id)
            .where(Series.study_id_fk == Study.id)
            .scalar_subquery()
        )
        study_series = (
            select(func.count(Series.id)).where(Series.study_id_fk == Study.id).scalar_subquery()
        )
        counters = select(
            Study.num_instances.label("study_images"),
            Study.num_series.label("study_series"),
            Series.num_instances.label("series_images"),
        ).join_from(Study, Series, Series.study_id_fk == Study.id).where(
            Study.id == study_id, Series.id == series_id
        )

        try:
            async with self._session_maker() as session:
                async with session.begin():
                    # Row lock serializes recounts of one study (no-op on SQLite)
                    await session.execute(
                        select(Study.id).where(Study.id == study_id).with_for_update()
                    )
                    # Each count is evaluated inside its UPDATE, never read then written back
                    await session.execute(
                        update(Series)
                        .where(Series.id == series_id)
                        .values(num_instances=series_images)
                        .execution_options(synchronize_session=False)
                    )
                    await session.execute(
                        update(Study)
                        .where(Study.id == study_id)
                        .values(num_instances=study_images, num_series=study_series)
                        .execution_options(synchronize_session=False)
                    )
                    row = (await session.execute(counters)).one()
        except SQLAlchemyError as e:
            raise PersistenceError(
                "Failed to refresh study counters",
                study_id=study_id,
                series_id=series_id,
                error=str(e),
            ) from e
        return {
            "study_images": row.study_images,
            "study_series": row.study_series,
            "series_images": row.series_images,
        }
