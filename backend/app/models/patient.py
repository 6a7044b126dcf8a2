"""
Patient database model.

Represents a patient identified by the medical record number (MRN)
issued by the source system, with relationships to studies.
"""

from datetime import date
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Date, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

if TYPE_CHECKING:
    from app.models.study import Study


class Patient(Base):
    """
    Patient model created lazily from acquisition notifications.

    Contact and demographic fields stay NULL until registration fills
    them; unknown is never stored as a fabricated value.
    """

    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Medical record number, DICOM Patient ID (0010,0020)
    mrn: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)

    # Split from DICOM Patient's Name (0010,0010)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False)
    first_name: Mapped[str] = mapped_column(String(128), nullable=False)

    # Unknown until registration
    birth_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    sex: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    # Relationships
    studies: Mapped[list["Study"]] = relationship("Study", back_populates="patient")

    __table_args__ = (Index("ix_patients_last_name", "last_name"),)

    @property
    def display_name(self) -> str:
        """Name in "Last, First" form."""
        return f"{self.last_name}, {self.first_name}"

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, mrn='{self.mrn}', name='{self.display_name}')>"
