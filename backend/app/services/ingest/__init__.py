"""Acquisition notification ingestion module."""

from app.services.ingest.diagnostics import DiagnosticEvent, DiagnosticLog, emit_diagnostics
from app.services.ingest.errors import (
    DependencyError,
    IngestError,
    PersistenceError,
    ValidationError,
)
from app.services.ingest.normalizer import NormalizedPayload, PayloadNormalizer
from app.services.ingest.outcome import Outcome
from app.services.ingest.pipeline import IngestionPipeline
from app.services.ingest.store import EntityKind, PersistenceStore, SqlAlchemyStore

__all__ = [
    "IngestionPipeline",
    "Outcome",
    "PayloadNormalizer",
    "NormalizedPayload",
    "DiagnosticEvent",
    "DiagnosticLog",
    "emit_diagnostics",
    "IngestError",
    "ValidationError",
    "DependencyError",
    "PersistenceError",
    "EntityKind",
    "PersistenceStore",
    "SqlAlchemyStore",
]
