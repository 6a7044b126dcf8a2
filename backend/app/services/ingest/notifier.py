"""Downstream notification collaborator.

The pipeline emits a single event, ``on_study_content_added``, when a
notification created a new study or a new image. Delivery (SMS, e-mail,
worklist refresh) is the collaborator's business.
"""

from typing import Protocol

from app.core.logging import get_logger

logger = get_logger(__name__)


class StudyContentNotifier(Protocol):
    """Receiver of study-content-added events."""

    async def on_study_content_added(self, study_id: int, is_new_study: bool) -> None:
        ...


class LoggingStudyNotifier:
    """Default notifier that only records the event in the application log."""

    async def on_study_content_added(self, study_id: int, is_new_study: bool) -> None:
        logger.info("study_content_added", study_id=study_id, is_new_study=is_new_study)


class RecordingStudyNotifier:
    """Notifier that keeps received events in memory, for replay tooling and tests."""

    def __init__(self) -> None:
        self.events: list[tuple[int, bool]] = []

    async def on_study_content_added(self, study_id: int, is_new_study: bool) -> None:
        self.events.append((study_id, is_new_study))
