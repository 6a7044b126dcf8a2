"""Payload normalizer for acquisition notifications.

Turns a loosely shaped webhook payload (JSON text or an already decoded
mapping, with an optional nested ``metadata`` block) into the strict
``NormalizedPayload`` the rest of the pipeline works on. Only payloads that
are not structured data at all are rejected; every other gap is filled
with a default and recorded as a diagnostic event.
"""

import hashlib
import json
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from app.core.config import IngestSettings, get_settings
from app.models.image import Image
from app.models.patient import Patient
from app.models.series import Series
from app.models.study import Study
from app.services.ingest.diagnostics import DiagnosticLog
from app.services.ingest.errors import ValidationError


class Modality(str, Enum):
    """Recognized modality codes."""

    CR = "CR"  # Computed Radiography
    DX = "DX"  # Digital Radiography
    XR = "XR"  # Plain X-Ray (RIS code)
    MG = "MG"  # Mammography
    CT = "CT"  # Computed Tomography
    MR = "MR"  # Magnetic Resonance
    PT = "PT"  # PET
    US = "US"  # Ultrasound
    XA = "XA"  # X-Ray Angiography
    NM = "NM"  # Nuclear Medicine
    SR = "SR"  # Structured Report
    SM = "SM"  # Slide Microscopy
    OT = "OT"  # Other


KNOWN_MODALITIES = frozenset(m.value for m in Modality)

# Accepted spellings per field, most specific first
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "patient_id": ("patientId", "patientID", "patient_id", "mrn"),
    "patient_name": ("patientName", "patient_name"),
    "patient_last_name": ("patientLastName", "lastName", "last_name"),
    "patient_first_name": ("patientFirstName", "firstName", "first_name"),
    "study_instance_uid": (
        "studyInstanceUID",
        "studyInstanceUid",
        "studyInstanceId",
        "study_instance_uid",
    ),
    "series_instance_uid": (
        "seriesInstanceUID",
        "seriesInstanceUid",
        "seriesInstanceId",
        "series_instance_uid",
    ),
    "sop_instance_uid": (
        "sopInstanceUID",
        "sopInstanceUid",
        "sopInstanceId",
        "sop_instance_uid",
    ),
    "modality": ("modality",),
    "study_date": ("studyDate", "study_date"),
    "study_time": ("studyTime", "study_time"),
    "accession_number": ("accessionNumber", "accession_number"),
    "body_part": ("bodyPartExamined", "bodyPart", "body_part"),
    "study_description": ("studyDescription", "study_description"),
    "series_description": ("seriesDescription", "series_description"),
    "series_number": ("seriesNumber", "series_number"),
    "instance_number": ("instanceNumber", "instance_number"),
    "storage_locator": ("storageLocator", "storageUrl", "filePath", "storage_locator"),
    "byte_size": ("byteSize", "fileSize", "byte_size"),
    "transfer_syntax_uid": ("transferSyntaxUID", "transferSyntaxUid", "transfer_syntax_uid"),
}

COMPACT_DATE = re.compile(r"^\d{8}$")
COMPACT_TIME = re.compile(r"^(\d{2})(\d{2})(\d{2})?(?:\.\d+)?$")


def _width(column) -> int:
    return column.type.length


# Widths of the columns each normalized field is stored in
FIELD_WIDTHS: dict[str, int] = {
    "patient_id": _width(Patient.__table__.c.mrn),
    "patient_last_name": _width(Patient.__table__.c.last_name),
    "patient_first_name": _width(Patient.__table__.c.first_name),
    "study_instance_uid": _width(Study.__table__.c.study_instance_uid),
    "accession_number": _width(Study.__table__.c.accession_number),
    "modality": _width(Study.__table__.c.modality),
    "study_description": _width(Study.__table__.c.study_description),
    "body_part": _width(Study.__table__.c.body_part_examined),
    "series_instance_uid": _width(Series.__table__.c.series_instance_uid),
    "series_description": _width(Series.__table__.c.series_description),
    "sop_instance_uid": _width(Image.__table__.c.sop_instance_uid),
    "transfer_syntax_uid": _width(Image.__table__.c.transfer_syntax_uid),
    "storage_locator": _width(Image.__table__.c.storage_locator),
}


@dataclass
class NormalizedPayload:
    """Strict internal shape of one acquisition notification."""

    # Hierarchy keys (always present after normalization)
    study_instance_uid: str
    series_instance_uid: str
    sop_instance_uid: str

    modality: str
    study_date: datetime
    storage_locator: str | None

    # Patient level
    patient_id: str | None = None
    patient_name: str | None = None
    patient_last_name: str = "Unknown"
    patient_first_name: str = "Patient"

    # Study level
    accession_number: str | None = None
    body_part: str | None = None
    study_description: str | None = None

    # Series level
    series_description: str | None = None
    series_number: int | None = None

    # Image level
    instance_number: int | None = None
    byte_size: int | None = None
    transfer_syntax_uid: str | None = None

    source: str | None = None
    study_uid_synthesized: bool = False

    def identifiers(self) -> dict[str, Any]:
        """Identifying fields used for diagnostics and replay."""
        return {
            "patientId": self.patient_id,
            "studyInstanceId": self.study_instance_uid,
            "seriesInstanceId": self.series_instance_uid,
            "sopInstanceId": self.sop_instance_uid,
            "accessionNumber": self.accession_number,
            "source": self.source,
        }


def _text(value: Any) -> str | None:
    """Return a stripped string for scalar values, None for blanks and containers."""
    if value is None or isinstance(value, (bool, Mapping, list, tuple, set)):
        return None
    text = str(value).strip()
    return text or None


def _coerce_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = _text(value)
    if text is None:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def _sources(data: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    metadata = data.get("metadata")
    if isinstance(metadata, Mapping):
        return [metadata, data]
    return [data]


def _pick(sources: list[Mapping[str, Any]], field_name: str) -> Any:
    """First non-blank value for a field across the metadata block and top level."""
    for source in sources:
        for alias in FIELD_ALIASES[field_name]:
            value = source.get(alias)
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            return value
    return None


def default_uid_factory(prefix: str, now: datetime) -> str:
    """Timestamp-derived placeholder study UID, unique per call."""
    return f"{prefix}_{int(now.timestamp() * 1000)}_{uuid4().hex[:12]}"


class PayloadNormalizer:
    """Validate and default incoming notification payloads.

    Args:
        settings: Ingest defaults; the application settings when omitted
        clock: Returns the processing time (UTC)
        uid_factory: Builds a placeholder study UID from prefix and time
    """

    def __init__(
        self,
        settings: IngestSettings | None = None,
        clock: Callable[[], datetime] | None = None,
        uid_factory: Callable[[str, datetime], str] | None = None,
    ):
        self.settings = settings or get_settings().ingest
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._uid_factory = uid_factory or default_uid_factory

    def decode(self, payload: Any) -> dict[str, Any]:
        """Decode the transport payload into a mapping.

        Raises:
            ValidationError: If the payload is not a structured JSON object
        """
        if isinstance(payload, Mapping):
            return dict(payload)

        if isinstance(payload, (bytes, bytearray)):
            try:
                payload = bytes(payload).decode("utf-8")
            except UnicodeDecodeError as e:
                raise ValidationError("Payload is not valid UTF-8", error=str(e)) from e

        if not isinstance(payload, str):
            raise ValidationError(
                "Unsupported payload type", payload_type=type(payload).__name__
            )

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ValidationError("Payload is not valid JSON", error=str(e)) from e

        if not isinstance(data, dict):
            raise ValidationError(
                "Payload must be a JSON object", payload_type=type(data).__name__
            )
        return data

    def normalize(self, payload: Any, diagnostics: DiagnosticLog) -> NormalizedPayload:
        """Produce the strict record for one notification.

        Raises:
            ValidationError: Only when ``decode`` rejects the payload
        """
        data = self.decode(payload)
        now = self._clock()

        if "metadata" in data and data["metadata"] is not None and not isinstance(
            data["metadata"], Mapping
        ):
            diagnostics.warning(
                "metadata_block_ignored",
                "Nested metadata is not an object; reading top-level fields only",
                metadata_type=type(data["metadata"]).__name__,
            )
        sources = _sources(data)

        def pick_text(field_name: str) -> str | None:
            return _text(_pick(sources, field_name))

        # Hierarchy keys
        study_uid = pick_text("study_instance_uid")
        study_uid_synthesized = False
        if study_uid is None:
            study_uid = self._uid_factory(self.settings.study_uid_prefix, now)
            study_uid_synthesized = True
            diagnostics.warning(
                "study_uid_synthesized",
                "Notification has no study instance UID; generated a placeholder",
                study_instance_uid=study_uid,
            )
        study_uid = self._fit_key("study_instance_uid", study_uid, diagnostics)

        instance_number = self._instance_number(_pick(sources, "instance_number"), diagnostics)

        series_uid = pick_text("series_instance_uid")
        if series_uid is None:
            series_uid = f"{study_uid}{self.settings.series_uid_suffix}"
            diagnostics.info(
                "series_uid_derived",
                "Series instance UID derived from the study UID",
                series_instance_uid=series_uid,
            )
        series_uid = self._fit_key("series_instance_uid", series_uid, diagnostics)

        sop_uid = pick_text("sop_instance_uid")
        if sop_uid is None:
            sop_uid = f"{series_uid}.{instance_number}"
            diagnostics.info(
                "sop_uid_derived",
                "SOP instance UID derived from the series UID and instance number",
                sop_instance_uid=sop_uid,
            )
        sop_uid = self._fit_key("sop_instance_uid", sop_uid, diagnostics)

        modality = self._modality(pick_text("modality"), diagnostics)
        study_date = self._study_date(
            _pick(sources, "study_date"), _pick(sources, "study_time"), now, diagnostics
        )

        patient_name = pick_text("patient_name")
        last_name, first_name = self._split_name(
            patient_name,
            pick_text("patient_last_name"),
            pick_text("patient_first_name"),
        )
        last_name = self._fit_text("patient_last_name", last_name, diagnostics)
        first_name = self._fit_text("patient_first_name", first_name, diagnostics)

        storage_locator = pick_text("storage_locator")
        if storage_locator is None:
            diagnostics.warning(
                "storage_locator_missing",
                "Notification carries no storage locator for the image",
                sop_instance_uid=sop_uid,
            )
        elif len(storage_locator) > FIELD_WIDTHS["storage_locator"]:
            # A cut locator would point at the wrong object
            diagnostics.warning(
                "storage_locator_dropped",
                "Storage locator exceeds its column width; not recorded",
                sop_instance_uid=sop_uid,
                length=len(storage_locator),
            )
            storage_locator = None

        raw_size = _pick(sources, "byte_size")
        byte_size = _coerce_int(raw_size)
        if raw_size is not None and (byte_size is None or byte_size < 0):
            diagnostics.warning(
                "byte_size_ignored", "Byte size is not a non-negative integer", value=str(raw_size)
            )
            byte_size = None

        series_number = _coerce_int(_pick(sources, "series_number"))

        return NormalizedPayload(
            study_instance_uid=study_uid,
            series_instance_uid=series_uid,
            sop_instance_uid=sop_uid,
            modality=modality,
            study_date=study_date,
            storage_locator=storage_locator,
            patient_id=self._fit_key("patient_id", pick_text("patient_id"), diagnostics),
            patient_name=patient_name,
            patient_last_name=last_name,
            patient_first_name=first_name,
            accession_number=self._fit_key(
                "accession_number", pick_text("accession_number"), diagnostics
            ),
            body_part=self._fit_text("body_part", pick_text("body_part"), diagnostics),
            study_description=self._fit_text(
                "study_description",
                pick_text("study_description") or f"{modality} Study",
                diagnostics,
            ),
            series_description=self._fit_text(
                "series_description",
                pick_text("series_description") or f"{modality} Series",
                diagnostics,
            ),
            series_number=(
                series_number if series_number is not None
                else self.settings.default_series_number
            ),
            instance_number=instance_number,
            byte_size=byte_size,
            transfer_syntax_uid=self._fit_text(
                "transfer_syntax_uid",
                pick_text("transfer_syntax_uid") or self.settings.default_transfer_syntax_uid,
                diagnostics,
            ),
            source=_text(data.get("source")),
            study_uid_synthesized=study_uid_synthesized,
        )

    def _instance_number(self, raw: Any, diagnostics: DiagnosticLog) -> int:
        value = _coerce_int(raw)
        if value is not None and value >= 0:
            return value
        if raw is not None:
            diagnostics.warning(
                "instance_number_defaulted",
                "Instance number is not a non-negative integer; using the default",
                value=str(raw),
                default=self.settings.default_instance_number,
            )
        return self.settings.default_instance_number

    def _modality(self, raw: str | None, diagnostics: DiagnosticLog) -> str:
        if raw is None:
            diagnostics.info(
                "modality_defaulted",
                "Notification has no modality; using the sentinel code",
                modality=self.settings.default_modality,
            )
            return self.settings.default_modality
        code = raw.upper()
        if len(code) > FIELD_WIDTHS["modality"]:
            diagnostics.warning(
                "modality_unrecognized",
                "Modality code is longer than any valid code; using the sentinel code",
                modality=code,
                default=self.settings.default_modality,
            )
            return self.settings.default_modality
        if code not in KNOWN_MODALITIES:
            diagnostics.warning(
                "modality_unrecognized", "Modality code is not a recognized value", modality=code
            )
        return code

    def _fit_key(
        self, field_name: str, value: str | None, diagnostics: DiagnosticLog
    ) -> str | None:
        """Shorten an over-long identifier to its column width.

        The digest suffix keeps the result stable across redeliveries and
        distinct for inputs that share a long prefix.
        """
        width = FIELD_WIDTHS[field_name]
        if value is None or len(value) <= width:
            return value
        digest = hashlib.sha1(value.encode("utf-8")).hexdigest()
        shortened = f"{value[: width - len(digest) - 1]}.{digest}"
        diagnostics.warning(
            "identifier_shortened",
            "Identifier exceeds its column width; replaced by a stable shortened form",
            field=field_name,
            length=len(value),
            shortened_to=shortened,
        )
        return shortened

    def _fit_text(
        self, field_name: str, value: str | None, diagnostics: DiagnosticLog
    ) -> str | None:
        width = FIELD_WIDTHS[field_name]
        if value is None or len(value) <= width:
            return value
        diagnostics.info(
            "field_truncated",
            "Value exceeds its column width; truncated",
            field=field_name,
            length=len(value),
            width=width,
        )
        return value[:width]

    def _study_date(
        self,
        raw_date: Any,
        raw_time: Any,
        now: datetime,
        diagnostics: DiagnosticLog,
    ) -> datetime:
        """Parse a compact YYYYMMDD date or an ISO timestamp; default to ``now``."""
        parsed: datetime | None = None

        if isinstance(raw_date, datetime):
            parsed = raw_date
        elif isinstance(raw_date, date):
            parsed = datetime.combine(raw_date, time())
        elif raw_date is not None:
            text = str(raw_date).strip()
            if COMPACT_DATE.match(text):
                try:
                    parsed = datetime(int(text[0:4]), int(text[4:6]), int(text[6:8]))
                except ValueError:
                    parsed = None
                else:
                    study_time = _parse_compact_time(raw_time)
                    if study_time is not None:
                        parsed = datetime.combine(parsed.date(), study_time)
            else:
                try:
                    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
                except ValueError:
                    parsed = None

        if parsed is None:
            diagnostics.warning(
                "study_date_defaulted",
                "Study date is absent or unparseable; using the processing time",
                value=None if raw_date is None else str(raw_date),
                defaulted_to=now.isoformat(),
            )
            return now

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def _split_name(
        self,
        composite: str | None,
        last_name: str | None,
        first_name: str | None,
    ) -> tuple[str, str]:
        """Split a "Last^First^Middle" name; explicit parts win."""
        parts = composite.split(self.settings.name_delimiter) if composite else []
        if last_name is None and parts:
            last_name = parts[0].strip() or None
        if first_name is None and len(parts) > 1:
            first_name = parts[1].strip() or None
        return (
            last_name or self.settings.unknown_last_name,
            first_name or self.settings.unknown_first_name,
        )


def _parse_compact_time(value: Any) -> time | None:
    """Parse DICOM time format (HHMM[SS[.FFFFFF]])."""
    text = _text(value)
    if text is None:
        return None
    match = COMPACT_TIME.match(text)
    if not match:
        return None
    try:
        return time(int(match.group(1)), int(match.group(2)), int(match.group(3) or 0))
    except ValueError:
        return None
