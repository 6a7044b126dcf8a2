"""Core configuration and utilities for Modality Ingest backend."""

from app.core.config import settings
from app.core.logging import audit_logger, get_logger, setup_logging

__all__ = ["settings", "audit_logger", "setup_logging", "get_logger"]
