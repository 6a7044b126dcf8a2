"""
Study database model.

Represents an imaging study with acquisition metadata and relationships
to patient, series and the study report.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, String, Integer, ForeignKey, Index, Enum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

if TYPE_CHECKING:
    from app.models.patient import Patient
    from app.models.report import Report
    from app.models.series import Series


class StudyStatus(str, PyEnum):
    """Study lifecycle status."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Study(Base):
    """
    Study model representing one imaging encounter.

    The patient reference is nullable: images can arrive before the
    administrative patient record exists.
    """

    __tablename__ = "studies"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # DICOM Study Instance UID (0020,000D) - globally unique
    study_instance_uid: Mapped[str] = mapped_column(
        String(128), unique=True, nullable=False, index=True
    )

    # DICOM Accession Number (0008,0050)
    accession_number: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )

    # DICOM Study Date (0008,0020) + Study Time (0008,0030)
    study_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # DICOM Modality (0008,0060) of the first received image
    modality: Mapped[str] = mapped_column(String(16), nullable=False, default="OT")

    # DICOM Study Description (0008,1030)
    study_description: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # DICOM Body Part Examined (0018,0015)
    body_part_examined: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Derived counters, recomputed after every ingestion
    num_series: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    num_instances: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    status: Mapped[StudyStatus] = mapped_column(
        Enum(StudyStatus), default=StudyStatus.COMPLETED, nullable=False
    )

    # Patient relationship
    patient_id_fk: Mapped[Optional[int]] = mapped_column(
        ForeignKey("patients.id", ondelete="SET NULL"), nullable=True
    )
    patient: Mapped[Optional["Patient"]] = relationship("Patient", back_populates="studies")

    # Relationships
    series_list: Mapped[list["Series"]] = relationship(
        "Series",
        back_populates="study",
        cascade="all, delete-orphan",
    )
    report: Mapped[Optional["Report"]] = relationship(
        "Report",
        back_populates="study",
        cascade="all, delete-orphan",
        uselist=False,
    )

    # Indexes for common queries
    __table_args__ = (
        Index("ix_studies_study_date_desc", study_date.desc()),
        Index("ix_studies_patient_id_fk", "patient_id_fk"),
        Index("ix_studies_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Study(id={self.id}, uid='{self.study_instance_uid}', modality='{self.modality}')>"
