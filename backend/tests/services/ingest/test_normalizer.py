"""Tests for acquisition payload normalization."""

import json
from datetime import datetime, timezone

import pytest

from app.core.config import IngestSettings
from app.services.ingest.diagnostics import DiagnosticLog
from app.services.ingest.errors import ValidationError
from app.services.ingest.normalizer import FIELD_WIDTHS, PayloadNormalizer

NOW = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def normalizer() -> PayloadNormalizer:
    counter = iter(range(1, 1000))
    return PayloadNormalizer(
        IngestSettings(),
        clock=lambda: NOW,
        uid_factory=lambda prefix, now: f"{prefix}_{next(counter)}",
    )


class TestDecode:
    """Transport decoding."""

    def test_json_text(self, normalizer: PayloadNormalizer):
        assert normalizer.decode('{"modality": "CT"}') == {"modality": "CT"}

    def test_utf8_bytes(self, normalizer: PayloadNormalizer):
        assert normalizer.decode(b'{"patientName": "M\xc3\xbcller^Hans"}') == {
            "patientName": "Müller^Hans"
        }

    def test_mapping_passes_through(self, normalizer: PayloadNormalizer):
        assert normalizer.decode({"a": 1}) == {"a": 1}

    @pytest.mark.parametrize("payload", ["not json", "[1, 2]", "42", b"\xff\xfe", 3.14])
    def test_rejects_non_objects(self, normalizer: PayloadNormalizer, payload):
        with pytest.raises(ValidationError) as exc_info:
            normalizer.decode(payload)
        assert exc_info.value.kind == "validation"
        assert exc_info.value.retryable is False


class TestNormalize:
    """Defaulting of missing or malformed fields."""

    def test_full_payload(self, normalizer: PayloadNormalizer, sample_payload):
        diagnostics = DiagnosticLog()
        result = normalizer.normalize(json.dumps(sample_payload), diagnostics)

        assert result.study_instance_uid == "1.2.840.113619.2.1.1.1"
        assert result.series_instance_uid == "1.2.840.113619.2.1.1.1.2"
        assert result.sop_instance_uid == "1.2.840.113619.2.1.1.1.2.3"
        assert result.modality == "CT"
        assert result.study_date == datetime(2024, 1, 1, 14, 30, 15, tzinfo=timezone.utc)
        assert result.patient_last_name == "Doe"
        assert result.patient_first_name == "Jane"
        assert result.storage_locator == "s3://pacs/1.2.840.113619.2.1.1.1.2.3.dcm"
        assert result.byte_size == 524288
        assert result.instance_number == 7
        assert result.series_number == 2
        assert result.study_description == "CT Study"
        assert result.source == "router-1"
        assert "study_date_defaulted" not in diagnostics.names()
        assert "study_uid_synthesized" not in diagnostics.names()

    def test_metadata_block_wins_over_top_level(self, normalizer: PayloadNormalizer):
        payload = {"modality": "MR", "metadata": {"modality": "CT", "studyInstanceUID": "S1"}}
        result = normalizer.normalize(payload, DiagnosticLog())
        assert result.modality == "CT"

    def test_missing_study_uid_is_synthesized(self, normalizer: PayloadNormalizer):
        diagnostics = DiagnosticLog()
        first = normalizer.normalize({"modality": "CT"}, diagnostics)
        second = normalizer.normalize({"modality": "CT"}, DiagnosticLog())

        assert first.study_instance_uid.startswith("STUDY_")
        assert first.study_instance_uid != second.study_instance_uid
        assert first.study_uid_synthesized is True
        assert "study_uid_synthesized" in diagnostics.names()

    def test_series_and_sop_derived(self, normalizer: PayloadNormalizer):
        diagnostics = DiagnosticLog()
        result = normalizer.normalize({"studyInstanceUID": "S1", "instanceNumber": "4"}, diagnostics)
        assert result.series_instance_uid == "S1.1"
        assert result.sop_instance_uid == "S1.1.4"
        assert {"series_uid_derived", "sop_uid_derived"} <= set(diagnostics.names())

    def test_unparseable_date_defaults_to_now(self, normalizer: PayloadNormalizer):
        diagnostics = DiagnosticLog()
        result = normalizer.normalize({"studyInstanceUID": "S1", "studyDate": "not-a-date"}, diagnostics)
        assert result.study_date == NOW
        assert "study_date_defaulted" in diagnostics.names()

    def test_invalid_compact_date_defaults_to_now(self, normalizer: PayloadNormalizer):
        diagnostics = DiagnosticLog()
        result = normalizer.normalize({"studyInstanceUID": "S1", "studyDate": "20241340"}, diagnostics)
        assert result.study_date == NOW
        assert "study_date_defaulted" in diagnostics.names()

    def test_iso_date(self, normalizer: PayloadNormalizer):
        result = normalizer.normalize(
            {"studyInstanceUID": "S1", "studyDate": "2024-02-29T08:15:00Z"}, DiagnosticLog()
        )
        assert result.study_date == datetime(2024, 2, 29, 8, 15, tzinfo=timezone.utc)

    def test_missing_modality_uses_sentinel(self, normalizer: PayloadNormalizer):
        diagnostics = DiagnosticLog()
        result = normalizer.normalize({"studyInstanceUID": "S1"}, diagnostics)
        assert result.modality == "OT"
        assert result.series_description == "OT Series"
        assert "modality_defaulted" in diagnostics.names()

    def test_unknown_name_defaults(self, normalizer: PayloadNormalizer):
        result = normalizer.normalize({"studyInstanceUID": "S1"}, DiagnosticLog())
        assert result.patient_last_name == "Unknown"
        assert result.patient_first_name == "Patient"
        assert result.patient_id is None

    def test_explicit_name_parts_win(self, normalizer: PayloadNormalizer):
        result = normalizer.normalize(
            {"studyInstanceUID": "S1", "patientName": "Doe^Jane", "firstName": "Janet"},
            DiagnosticLog(),
        )
        assert (result.patient_last_name, result.patient_first_name) == ("Doe", "Janet")

    def test_missing_locator_and_bad_size(self, normalizer: PayloadNormalizer):
        diagnostics = DiagnosticLog()
        result = normalizer.normalize({"studyInstanceUID": "S1", "byteSize": "-5"}, diagnostics)
        assert result.storage_locator is None
        assert result.byte_size is None
        assert {"storage_locator_missing", "byte_size_ignored"} <= set(diagnostics.names())

    def test_negative_instance_number_defaults(self, normalizer: PayloadNormalizer):
        diagnostics = DiagnosticLog()
        result = normalizer.normalize({"studyInstanceUID": "S1", "instanceNumber": -3}, diagnostics)
        assert result.instance_number == 1
        assert "instance_number_defaulted" in diagnostics.names()

    def test_non_object_metadata_is_ignored(self, normalizer: PayloadNormalizer):
        diagnostics = DiagnosticLog()
        result = normalizer.normalize({"studyInstanceUID": "S1", "metadata": "oops"}, diagnostics)
        assert result.study_instance_uid == "S1"
        assert "metadata_block_ignored" in diagnostics.names()



class TestColumnWidths:
    """Values longer than their columns are bounded before they reach the database."""

    def test_overlong_modality_uses_sentinel(self, normalizer: PayloadNormalizer):
        diagnostics = DiagnosticLog()
        result = normalizer.normalize(
            {"studyInstanceUID": "S1", "modality": "COMPUTED-TOMOGRAPHY-HELICAL"}, diagnostics
        )
        assert result.modality == "OT"
        assert result.study_description == "OT Study"
        assert "modality_unrecognized" in diagnostics.names()

    def test_overlong_study_uid_is_shortened_stably(self, normalizer: PayloadNormalizer):
        uid = "1.2.840." + "9" * 200
        diagnostics = DiagnosticLog()
        first = normalizer.normalize({"studyInstanceUID": uid}, diagnostics)
        second = normalizer.normalize({"studyInstanceUID": uid}, DiagnosticLog())

        assert len(first.study_instance_uid) == FIELD_WIDTHS["study_instance_uid"]
        assert first.study_instance_uid == second.study_instance_uid
        assert first.study_instance_uid.startswith("1.2.840.")
        assert "identifier_shortened" in diagnostics.names()
        # Derived keys stay within their widths too
        assert len(first.series_instance_uid) <= FIELD_WIDTHS["series_instance_uid"]
        assert len(first.sop_instance_uid) <= FIELD_WIDTHS["sop_instance_uid"]

    def test_shared_prefix_keeps_identifiers_distinct(self, normalizer: PayloadNormalizer):
        prefix = "1.2.3." + "4" * 200
        first = normalizer.normalize({"studyInstanceUID": prefix + ".1"}, DiagnosticLog())
        second = normalizer.normalize({"studyInstanceUID": prefix + ".2"}, DiagnosticLog())
        assert first.study_instance_uid != second.study_instance_uid

    def test_overlong_patient_id_and_accession(self, normalizer: PayloadNormalizer):
        result = normalizer.normalize(
            {"studyInstanceUID": "S1", "patientId": "M" * 100, "accessionNumber": "A" * 100},
            DiagnosticLog(),
        )
        assert len(result.patient_id) == FIELD_WIDTHS["patient_id"]
        assert len(result.accession_number) == FIELD_WIDTHS["accession_number"]

    def test_descriptive_fields_are_truncated(self, normalizer: PayloadNormalizer):
        diagnostics = DiagnosticLog()
        result = normalizer.normalize(
            {"studyInstanceUID": "S1", "bodyPartExamined": "X" * 100, "patientName": "D" * 300},
            diagnostics,
        )
        assert result.body_part == "X" * FIELD_WIDTHS["body_part"]
        assert result.patient_last_name == "D" * FIELD_WIDTHS["patient_last_name"]
        assert "field_truncated" in diagnostics.names()

    def test_overlong_locator_is_dropped(self, normalizer: PayloadNormalizer):
        diagnostics = DiagnosticLog()
        result = normalizer.normalize(
            {"studyInstanceUID": "S1", "storageLocator": "s3://pacs/" + "k" * 2000}, diagnostics
        )
        assert result.storage_locator is None
        assert "storage_locator_dropped" in diagnostics.names()
