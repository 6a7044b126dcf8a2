"""
Database models for Modality Ingest.

This module exports all SQLAlchemy models and database utilities.
"""

from app.models.base import Base, get_db, engine, async_session_maker
from app.models.patient import Patient
from app.models.study import Study, StudyStatus
from app.models.series import Series
from app.models.image import Image
from app.models.report import Report, ReportStatus

__all__ = [
    "Base",
    "get_db",
    "engine",
    "async_session_maker",
    "Patient",
    "Study",
    "StudyStatus",
    "Series",
    "Image",
    "Report",
    "ReportStatus",
]
