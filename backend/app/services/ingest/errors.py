"""Error types of the ingestion pipeline.

Every ``IngestError`` is caught at the ``ingest`` boundary and returned in
the outcome; callers use ``kind``/``retryable`` to pick a retry policy.
"""

from typing import Any


class IngestError(Exception):
    """Base class for errors that abort one notification."""

    kind = "ingest"
    retryable = False

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context,
        }


class ValidationError(IngestError):
    """The payload is not decodable structured data, or holds values the database rejects."""

    kind = "validation"


class DependencyError(IngestError):
    """A parent entity needed to create a child could not be resolved."""

    kind = "dependency"


class PersistenceError(IngestError):
    """The store is unreachable or failed for a reason other than a key conflict."""

    kind = "persistence"
    retryable = True


class UniqueConflict(Exception):
    """An insert lost a race on a unique key.

    Raised by stores and consumed by the resolver, which re-reads the
    winning row.
    """

    def __init__(self, entity_kind: str, key: Any):
        super().__init__(f"{entity_kind} with key {key!r} already exists")
        self.entity_kind = entity_kind
        self.key = key
