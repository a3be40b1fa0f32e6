"""Schema validation tests.

These tests verify that all Pydantic models accept valid data, reject invalid
data, and enforce field constraints. No API key or external services required.
"""

import uuid
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from core.config import MAX_ISSUES_PER_RUN_LIMIT, TriageSettings
from schemas.events import RumErrorEvent
from schemas.result import GroupSummary, TriageReport
from schemas.status import ErrorStatus, StatusVerdict


# ── Helpers ──────────────────────────────────────────────────────────────────

def make_event_dict(**error_overrides) -> dict:
    error = {"message": "boom", "type": "Error", "source": "source"}
    error.update(error_overrides)
    return {
        "id": "evt-1",
        "type": "rum",
        "attributes": {
            "timestamp": 1714557600000,
            "service": "web-app",
            "tags": ["env:prod", "version:1.2:beta"],
            "attributes": {"error": error, "context": {"nested": {"ok": [1, "two", None]}}},
        },
    }


def make_verdict(**overrides) -> StatusVerdict:
    defaults = dict(status=ErrorStatus.ACTIVE, confidence=0.7, reason="Ongoing error with stable pattern")
    return StatusVerdict(**{**defaults, **overrides})


def make_summary(**overrides) -> GroupSummary:
    defaults = dict(
        identity="abc123",
        title="Error: boom",
        error_type="Error",
        message="boom",
        source="source",
        count=3,
        first_seen=1,
        last_seen=2,
        affected_users=1,
        verdict=make_verdict(),
    )
    return GroupSummary(**{**defaults, **overrides})


# ── RumErrorEvent ─────────────────────────────────────────────────────────────

class TestRumErrorEvent:
    def test_valid_event(self):
        event = RumErrorEvent.model_validate(make_event_dict())
        assert event.id == "evt-1"
        assert event.timestamp == 1714557600000
        assert event.error.message == "boom"
        assert event.detail.context == {"nested": {"ok": [1, "two", None]}}

    def test_iso_timestamp_is_converted_to_millis(self):
        raw = make_event_dict()
        raw["attributes"]["timestamp"] = "2024-05-01T10:00:00Z"
        assert RumErrorEvent.model_validate(raw).timestamp == 1714557600000

    def test_datetime_timestamp_is_converted_to_millis(self):
        raw = make_event_dict()
        raw["attributes"]["timestamp"] = datetime(2024, 5, 1, 10, tzinfo=timezone.utc)
        assert RumErrorEvent.model_validate(raw).timestamp == 1714557600000

    def test_numeric_string_timestamp(self):
        raw = make_event_dict()
        raw["attributes"]["timestamp"] = "1714557600000"
        assert RumErrorEvent.model_validate(raw).timestamp == 1714557600000

    def test_missing_timestamp_raises(self):
        raw = make_event_dict()
        del raw["attributes"]["timestamp"]
        with pytest.raises(ValidationError):
            RumErrorEvent.model_validate(raw)

    def test_event_without_error_payload_is_valid(self):
        raw = make_event_dict()
        raw["attributes"]["attributes"] = {"view": {"url": "https://example.com"}}
        event = RumErrorEvent.model_validate(raw)
        assert event.error is None

    def test_error_fields_default_to_empty(self):
        raw = make_event_dict()
        raw["attributes"]["attributes"]["error"] = {}
        error = RumErrorEvent.model_validate(raw).error
        assert (error.message, error.type, error.source) == ("", "", "")
        assert error.is_crash is None

    def test_tag_lookup_splits_on_first_colon(self):
        event = RumErrorEvent.model_validate(make_event_dict())
        assert event.tag("env") == "prod"
        assert event.tag("version") == "1.2:beta"
        assert event.tag("missing") is None


# ── StatusVerdict ─────────────────────────────────────────────────────────────

class TestStatusVerdict:
    def test_status_values_are_strings(self):
        assert ErrorStatus.FOR_REVIEW == "FOR_REVIEW"
        assert ErrorStatus.LIKELY_RESOLVED == "LIKELY_RESOLVED"
        assert ErrorStatus.ACTIVE == "ACTIVE"
        assert ErrorStatus.UNKNOWN == "UNKNOWN"

    def test_confidence_bounds(self):
        assert make_verdict(confidence=0.0).confidence == 0.0
        assert make_verdict(confidence=1.0).confidence == 1.0

    @pytest.mark.parametrize("confidence", [-0.1, 1.1])
    def test_confidence_out_of_range_raises(self, confidence):
        with pytest.raises(ValidationError):
            make_verdict(confidence=confidence)

    def test_invalid_status_raises(self):
        with pytest.raises(ValidationError):
            make_verdict(status="SOMETIMES")


# ── GroupSummary / TriageReport ───────────────────────────────────────────────

class TestGroupSummary:
    def test_valid_summary(self):
        s = make_summary()
        assert s.count == 3
        assert s.labels == []
        assert s.has_replay is False

    def test_zero_count_raises(self):
        with pytest.raises(ValidationError):
            make_summary(count=0)

    def test_serializes_status_as_plain_string(self):
        dumped = make_summary().model_dump(mode="json")
        assert dumped["verdict"]["status"] == "ACTIVE"


class TestTriageReport:
    def test_execution_id_is_valid_uuid(self):
        report = TriageReport(summaries=[], total_events=0, skipped_events=0, group_count=0)
        assert str(uuid.UUID(report.execution_id)) == report.execution_id

    def test_each_report_gets_unique_execution_id(self):
        r1 = TriageReport(summaries=[], total_events=0, skipped_events=0, group_count=0)
        r2 = TriageReport(summaries=[], total_events=0, skipped_events=0, group_count=0)
        assert r1.execution_id != r2.execution_id


# ── TriageSettings ────────────────────────────────────────────────────────────

class TestTriageSettings:
    def test_defaults(self):
        s = TriageSettings()
        assert s.max_issues_per_run == 10
        assert s.error_handling == "unhandled"
        assert s.datadog.live is False
        assert s.aggregation.max_stored_occurrences == 100

    def test_max_issues_above_limit_raises(self):
        with pytest.raises(ValidationError):
            TriageSettings(max_issues_per_run=MAX_ISSUES_PER_RUN_LIMIT + 1)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DD_API_KEY", "api")
        monkeypatch.setenv("DD_APP_KEY", "app")
        monkeypatch.setenv("RUM_SERVICE", "checkout")
        monkeypatch.setenv("RUM_EXCLUDE_NOISE", "false")
        monkeypatch.setenv("MAX_ISSUES_PER_RUN", "500")
        monkeypatch.setenv("ISSUE_LABELS", "bug, rum ,")
        monkeypatch.setenv("ISSUE_FATAL_LABELS", "crash")

        s = TriageSettings.from_env()

        assert s.datadog.live is True
        assert s.service == "checkout"
        assert s.exclude_noise is False
        assert s.max_issues_per_run == MAX_ISSUES_PER_RUN_LIMIT
        assert s.labels == ["bug", "rum"]
        assert s.fatal_labels == ["crash"]
