"""Unit tests for extraction output parsing and alert normalization.

Pure function tests - no mocks needed, fast execution.
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from alertflow.core.errors import ParseError
from alertflow.core.normalizer import (
    RawCandidate,
    UNKNOWN,
    UNKNOWN_LOCATION,
    determine_severity,
    normalize_candidate,
    normalize_extraction,
    parse_extraction_output,
    parse_number,
    scan_brace_fragments,
    strip_code_fences,
)


NOW = datetime(2025, 6, 4, 14, 30, 0, tzinfo=timezone.utc)


def _event(**overrides):
    event = {
        "disasterType": "earthquake",
        "latitude": "37.77",
        "longitude": "-122.41",
        "location": "SF",
        "date": "2025-06-04",
        "time": "14:30:00",
        "magnitude": "7.2",
    }
    event.update(overrides)
    return event


class TestStripCodeFences:
    """Tests for strip_code_fences()."""

    def test_removes_json_fence(self):
        """```json ... ``` wrappers are removed."""
        text = '```json\n[{"a": 1}]\n```'
        assert strip_code_fences(text) == '[{"a": 1}]'

    def test_removes_bare_fence(self):
        """Fences without a language tag are removed too."""
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_leaves_plain_json_alone(self):
        """Unfenced text is only trimmed."""
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


class TestScanBraceFragments:
    """Tests for the balanced-brace fallback scanner."""

    def test_back_to_back_objects(self):
        """Two concatenated objects become two fragments."""
        assert scan_brace_fragments('{"a": 1}{"b": 2}') == ['{"a": 1}', '{"b": 2}']

    def test_nested_braces_stay_in_one_fragment(self):
        """Nested objects do not split the outer fragment."""
        text = '{"a": {"b": 1}} junk {"c": 2}'
        assert scan_brace_fragments(text) == ['{"a": {"b": 1}}', '{"c": 2}']

    def test_braces_inside_strings_are_ignored(self):
        """A brace inside a string literal does not close the fragment."""
        text = '{"location": "Sector }7{"}{"b": 2}'
        assert scan_brace_fragments(text) == ['{"location": "Sector }7{"}', '{"b": 2}']

    def test_escaped_quote_inside_string(self):
        """Escaped quotes keep the scanner inside the string."""
        text = r'{"location": "the \"} zone"}'
        assert scan_brace_fragments(text) == [text]

    def test_unclosed_fragment_is_returned(self):
        """An unclosed tail is returned so it can be reported."""
        assert scan_brace_fragments('{"a": 1} {"b": ') == ['{"a": 1}', '{"b": ']

    def test_object_after_unclosed_brace_is_found(self):
        """A complete object following a truncated one is still a fragment."""
        truncated = '{"location": "A",\n'
        complete = '{"location": "B"}'
        assert scan_brace_fragments(truncated + complete) == [truncated + complete, complete]

    def test_no_braces(self):
        """Text without braces yields no fragments."""
        assert scan_brace_fragments("no json here") == []


class TestParseExtractionOutput:
    """Tests for parse_extraction_output()."""

    def test_array_payload(self):
        """Each array element is a candidate."""
        candidates, errors = parse_extraction_output(json.dumps([_event(), _event()]))
        assert len(candidates) == 2
        assert errors == []

    def test_single_object_payload(self):
        """A single object is the sole candidate."""
        candidates, errors = parse_extraction_output(json.dumps(_event()))
        assert len(candidates) == 1
        assert errors == []

    def test_fenced_payload(self):
        """Code fences around the payload are tolerated."""
        text = "```json\n" + json.dumps([_event()]) + "\n```"
        candidates, _ = parse_extraction_output(text)
        assert len(candidates) == 1

    def test_back_to_back_objects_use_fallback(self):
        """Concatenated objects without an array are recovered one by one."""
        text = json.dumps(_event(location="A")) + "\n" + json.dumps(_event(location="B"))
        candidates, errors = parse_extraction_output(text)
        assert [c["location"] for c in candidates] == ["A", "B"]
        assert errors == []

    def test_bad_fragment_is_skipped_and_recorded(self):
        """A broken fragment is counted, the good ones survive."""
        text = '{"location": "A"} {"location": oops} {"location": "C"}'
        candidates, errors = parse_extraction_output(text)
        assert [c["location"] for c in candidates] == ["A", "C"]
        assert len(errors) == 1
        assert isinstance(errors[0], ParseError)

    def test_truncated_object_does_not_hide_the_next(self):
        """An object cut off mid-way is recorded and the one after it survives."""
        text = (
            '{"disasterType": "flood", "location": "A",\n'
            '{"disasterType": "cyclone", "location": "B", "magnitude": "3"}'
        )
        candidates, errors = parse_extraction_output(text)
        assert [c["disasterType"] for c in candidates] == ["cyclone"]
        assert len(errors) == 1

    def test_non_object_elements_are_errors(self):
        """Array elements that are not objects are skipped."""
        candidates, errors = parse_extraction_output('[{"location": "A"}, 42, "x"]')
        assert len(candidates) == 1
        assert len(errors) == 2

    def test_empty_payload(self):
        """Empty or missing payloads yield nothing and never raise."""
        assert parse_extraction_output("") == ([], [])
        assert parse_extraction_output(None) == ([], [])

    def test_garbage_payload(self):
        """Text with no JSON at all yields nothing."""
        assert parse_extraction_output("The model refused.") == ([], [])


class TestParseNumber:
    """Tests for parse_number()."""

    @pytest.mark.parametrize("value,expected", [
        ("7.2", 7.2),
        (" 6.1 Mw", 6.1),
        (5, 5.0),
        (4.5, 4.5),
        ("-122.41", -122.41),
        ("0", 0.0),
    ])
    def test_parses_numbers(self, value, expected):
        assert parse_number(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", [None, "", "Unknown", "N/A", True, "nan", float("inf"), [1]])
    def test_rejects_non_numbers(self, value):
        assert parse_number(value) is None


class TestDetermineSeverity:
    """Tests for determine_severity() thresholds."""

    @pytest.mark.parametrize("magnitude,expected", [
        ("7.0", "critical"),
        ("7.2", "critical"),
        ("6.99", "high"),
        ("6.0", "high"),
        ("5.9", "medium"),
        ("4.0", "medium"),
        ("3.99", "low"),
        ("0", "low"),
    ])
    def test_earthquake_thresholds(self, magnitude, expected):
        assert determine_severity(magnitude, "earthquake") == expected

    def test_earthquake_non_numeric_is_medium(self):
        """A magnitude that is not a number yields medium, not low."""
        assert determine_severity("Unknown", "earthquake") == "medium"
        assert determine_severity(None, "earthquake") == "medium"

    def test_type_matching_is_case_insensitive(self):
        """EARTHQUAKE and Earthquake use the earthquake scale."""
        assert determine_severity("6.5", "EARTHQUAKE") == "high"
        assert determine_severity("6.5", " Earthquake ") == "high"

    @pytest.mark.parametrize("kind", ["cyclone", "Hurricane"])
    @pytest.mark.parametrize("magnitude,expected", [
        ("4", "critical"),
        ("3", "high"),
        ("2", "medium"),
        ("1", "low"),
    ])
    def test_cyclone_thresholds(self, kind, magnitude, expected):
        assert determine_severity(magnitude, kind) == expected

    @pytest.mark.parametrize("magnitude,expected", [
        ("7", "critical"),
        ("5", "high"),
        ("3", "medium"),
        ("2.9", "low"),
    ])
    def test_other_type_thresholds(self, magnitude, expected):
        assert determine_severity(magnitude, "flood") == expected


class TestNormalizeCandidate:
    """Tests for normalize_candidate()."""

    def test_full_candidate(self):
        """All fields are copied and the lifecycle fields are set."""
        alert = normalize_candidate(
            RawCandidate(
                disaster_type="Earthquake",
                latitude="37.77",
                longitude="-122.41",
                location="SF",
                date="2025-06-04",
                time="14:30:00",
                magnitude="7.2",
            ),
            now=NOW,
            alert_id="a1",
        )

        assert alert.id == "a1"
        assert alert.disaster_type == "Earthquake"
        assert alert.disaster_key == "earthquake"
        assert alert.latitude == pytest.approx(37.77)
        assert alert.longitude == pytest.approx(-122.41)
        assert alert.severity == "critical"
        assert alert.created_at == NOW
        assert alert.expires_at == NOW + timedelta(hours=24)
        assert alert.is_active is True
        assert alert.notification_sent is False
        assert alert.source == "USGS"

    def test_missing_fields_get_defaults(self):
        """Missing or empty strings fall back to defaults."""
        alert = normalize_candidate(
            RawCandidate(location="  ", magnitude=""),
            now=NOW,
            alert_id="a1",
        )

        assert alert.disaster_type == UNKNOWN
        assert alert.location == UNKNOWN_LOCATION
        assert alert.magnitude == UNKNOWN
        assert alert.date == "2025-06-04"
        assert alert.time == "14:30:00"
        assert alert.severity == "medium"

    def test_non_numeric_coordinates_are_absent(self):
        """Unreadable coordinates become None, never zero."""
        alert = normalize_candidate(
            RawCandidate(latitude="unknown", longitude=None),
            now=NOW,
            alert_id="a1",
        )
        assert alert.latitude is None
        assert alert.longitude is None
        assert alert.coordinates is None

    def test_numeric_magnitude_kept_as_text(self):
        """Magnitude stays opaque text even when sent as a number."""
        alert = normalize_candidate(RawCandidate(magnitude=6.1), now=NOW, alert_id="a1")
        assert alert.magnitude == "6.1"


class TestNormalizeExtraction:
    """Tests for normalize_extraction()."""

    def test_array_of_n_yields_n_alerts_with_unique_ids(self):
        """N objects become N alerts, unique IDs, a 24h validity window."""
        payload = json.dumps([_event(location=f"L{i}") for i in range(5)])

        result = normalize_extraction(payload, now=NOW)

        assert len(result.alerts) == 5
        assert len({a.id for a in result.alerts}) == 5
        for alert in result.alerts:
            assert alert.created_at <= alert.expires_at
            assert alert.expires_at - alert.created_at == timedelta(hours=24)

    def test_extraction_order_is_preserved(self):
        """Alerts come out in the order they were extracted."""
        payload = json.dumps([_event(location="first"), _event(location="second")])
        result = normalize_extraction(payload, now=NOW)
        assert [a.location for a in result.alerts] == ["first", "second"]

    def test_back_to_back_objects_yield_two_alerts(self):
        """Fragment-scan fallback still produces both alerts."""
        payload = json.dumps(_event()) + json.dumps(_event(magnitude="4.1"))

        result = normalize_extraction(payload, now=NOW)

        assert len(result.alerts) == 2
        assert [a.severity for a in result.alerts] == ["critical", "medium"]
        assert result.parse_error_count == 0

    def test_parse_errors_are_counted(self):
        """Broken fragments are counted without failing the batch."""
        payload = '{"disasterType": "flood"} {broken}'
        result = normalize_extraction(payload, now=NOW)
        assert len(result.alerts) == 1
        assert result.parse_error_count == 1

    def test_custom_window_source_and_ids(self):
        """Validity window, source and ID generation are configurable."""
        ids = iter(["x1", "x2"])

        result = normalize_extraction(
            json.dumps([_event(), _event()]),
            now=NOW,
            validity_hours=6,
            source="IMD",
            id_factory=lambda: next(ids),
        )

        assert [a.id for a in result.alerts] == ["x1", "x2"]
        assert all(a.source == "IMD" for a in result.alerts)
        assert result.alerts[0].expires_at == NOW + timedelta(hours=6)

    def test_defaults_to_current_time(self):
        """Without an explicit instant, created_at is the current UTC time."""
        before = datetime.now(timezone.utc)
        result = normalize_extraction(json.dumps([_event()]))
        after = datetime.now(timezone.utc)

        assert before <= result.alerts[0].created_at <= after
