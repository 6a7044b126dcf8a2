"""
Series database model.

Represents an acquisition set within a study, with relationships
to its images.
"""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Integer, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

if TYPE_CHECKING:
    from app.models.image import Image
    from app.models.study import Study


class Series(Base):
    """
    Series model representing a DICOM series.

    A series belongs to a study and contains multiple images.
    """

    __tablename__ = "series"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # DICOM Series Instance UID (0020,000E) - globally unique
    series_instance_uid: Mapped[str] = mapped_column(
        String(128), unique=True, nullable=False, index=True
    )

    # DICOM Series Number (0020,0011)
    series_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # DICOM Series Description (0008,103E)
    series_description: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # DICOM Modality (0008,0060)
    modality: Mapped[str] = mapped_column(String(16), nullable=False, default="OT")

    # Calculated fields
    num_instances: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Study relationship
    study_id_fk: Mapped[int] = mapped_column(
        ForeignKey("studies.id", ondelete="CASCADE"),
        nullable=False,
    )
    study: Mapped["Study"] = relationship("Study", back_populates="series_list")

    # Image relationship
    images: Mapped[list["Image"]] = relationship(
        "Image",
        back_populates="series",
        cascade="all, delete-orphan",
        order_by="Image.instance_number",
    )

    # Indexes for common queries
    __table_args__ = (
        Index("ix_series_study_id_fk", "study_id_fk"),
        Index("ix_series_modality", "modality"),
    )

    def __repr__(self) -> str:
        return (
            f"<Series(id={self.id}, uid='{self.series_instance_uid}', modality='{self.modality}')>"
        )
