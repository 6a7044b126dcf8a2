"""Pytest configuration and shared fixtures for Modality Ingest backend tests.

This module provides common fixtures for testing the backend components
including database sessions, the ingestion pipeline, and sample payloads.
"""

import os

# Keep the module-level engine off PostgreSQL during tests
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///:memory:")

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import IngestSettings
from app.models.base import Base
from app.services.ingest.notifier import RecordingStudyNotifier
from app.services.ingest.pipeline import IngestionPipeline
from app.services.ingest.store import SqlAlchemyStore

FIXED_NOW = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with all tables created."""
    db_file = tmp_path / "ingest.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_file}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(db_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def store(session_maker: async_sessionmaker[AsyncSession]) -> SqlAlchemyStore:
    """SQLAlchemy-backed persistence store."""
    return SqlAlchemyStore(session_maker)


@pytest.fixture
def notifier() -> RecordingStudyNotifier:
    """Notifier that remembers every study-content event."""
    return RecordingStudyNotifier()


@pytest.fixture
def ingest_settings() -> IngestSettings:
    """Ingest defaults, independent of the environment."""
    return IngestSettings()


@pytest.fixture
def pipeline(
    store: SqlAlchemyStore,
    notifier: RecordingStudyNotifier,
    ingest_settings: IngestSettings,
) -> IngestionPipeline:
    """Pipeline with a fixed clock."""
    return IngestionPipeline(
        store,
        notifier=notifier,
        settings=ingest_settings,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def sample_payload() -> dict[str, Any]:
    """Complete acquisition notification as sent by a DICOM router."""
    return {
        "source": "router-1",
        "metadata": {
            "patientId": "MRN001",
            "patientName": "Doe^Jane^Q",
            "studyInstanceUID": "1.2.840.113619.2.1.1.1",
            "seriesInstanceUID": "1.2.840.113619.2.1.1.1.2",
            "sopInstanceUID": "1.2.840.113619.2.1.1.1.2.3",
            "modality": "ct",
            "studyDate": "20240101",
            "studyTime": "143015",
            "accessionNumber": "ACC-42",
            "bodyPartExamined": "CHEST",
            "seriesNumber": 2,
            "instanceNumber": 7,
        },
        "storageLocator": "s3://pacs/1.2.840.113619.2.1.1.1.2.3.dcm",
        "byteSize": 524288,
    }
