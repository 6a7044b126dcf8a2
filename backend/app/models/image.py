"""
Image database model.

Represents a single received DICOM instance within a series
with its storage location.
"""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Integer, ForeignKey, Index, BigInteger
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

if TYPE_CHECKING:
    from app.models.series import Series


class Image(Base):
    """
    Image model representing one DICOM instance.

    The pixel data itself lives in external storage; only its locator is kept.
    """

    __tablename__ = "images"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # DICOM SOP Instance UID (0008,0018) - globally unique
    sop_instance_uid: Mapped[str] = mapped_column(
        String(128), unique=True, nullable=False, index=True
    )

    # DICOM Instance Number (0020,0013)
    instance_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Transfer Syntax UID (0002,0010)
    transfer_syntax_uid: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # File storage information
    storage_locator: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    byte_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    # Series relationship
    series_id_fk: Mapped[int] = mapped_column(
        ForeignKey("series.id", ondelete="CASCADE"),
        nullable=False,
    )
    series: Mapped["Series"] = relationship("Series", back_populates="images")

    # Indexes for common queries
    __table_args__ = (
        Index("ix_images_series_id_fk", "series_id_fk"),
        Index("ix_images_number", "instance_number"),
    )

    def __repr__(self) -> str:
        return f"<Image(id={self.id}, uid='{self.sop_instance_uid}', number={self.instance_number})>"
