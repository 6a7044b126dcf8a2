"""
Report database model.

Represents the radiology report of a study. Exactly one report exists
per study; it is created as a pending placeholder when the first image
arrives and is then owned by the reporting workflow.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, String, ForeignKey, Index, Enum, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

if TYPE_CHECKING:
    from app.models.study import Study


class ReportStatus(str, PyEnum):
    """Report lifecycle: PENDING -> IN_REVIEW -> FINAL / AMENDED."""

    PENDING = "pending"
    IN_REVIEW = "in_review"
    FINAL = "final"
    AMENDED = "amended"


class Report(Base):
    """Report model, one-to-one with Study."""

    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    study_id_fk: Mapped[int] = mapped_column(
        ForeignKey("studies.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    study: Mapped["Study"] = relationship("Study", back_populates="report")

    radiologist_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    findings: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    impression: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    technique: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    clinical_history: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[ReportStatus] = mapped_column(
        Enum(ReportStatus), default=ReportStatus.PENDING, nullable=False
    )
    finalized_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (Index("ix_reports_status", "status"),)

    def __repr__(self) -> str:
        return f"<Report(id={self.id}, study_id={self.study_id_fk}, status='{self.status.value}')>"
