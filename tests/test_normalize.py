"""
Tests for submission normalization.
"""

from datetime import datetime, timezone

from internet_mood.models import MoodSubmission
from internet_mood.normalize import (
    REASON_MAX_LENGTH,
    normalize_country,
    normalize_submission,
    sanitize_reason,
    utc_timestamp,
)

FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class TestSanitizeReason:
    """Test suite for reason sanitization."""

    def test_absent_or_blank(self):
        assert sanitize_reason(None) is None
        assert sanitize_reason("") is None
        assert sanitize_reason("   \n\t ") is None

    def test_line_breaks_and_spaces_collapse(self):
        assert sanitize_reason("  long\r\n\r\nday\tat   work ") == "long day at work"

    def test_truncates_before_cleaning(self):
        """Whitespace counts towards the limit because truncation comes first."""
        raw = "hello" + " " * 30 + "world"
        assert sanitize_reason(raw) == "hello"

    def test_truncation_can_cut_a_word(self):
        raw = "a" * 28 + " wonderful"
        assert sanitize_reason(raw) == "a" * 28 + " w"

    def test_output_invariants(self):
        samples = [
            "x" * 100,
            "\n" * 50,
            "tab\tseparated\tvalues\tthat\tgo\ton",
            "multi\nline\nreason\nwith\nbreaks\neverywhere",
            "  padded  " * 10,
            "😄 emoji reasons are fine too 😄😄😄",
        ]
        for raw in samples:
            reason = sanitize_reason(raw)
            if reason is None:
                continue
            assert len(reason) <= REASON_MAX_LENGTH
            assert "\n" not in reason and "\t" not in reason and "\r" not in reason
            assert "  " not in reason
            assert reason == reason.strip()


class TestNormalizeSubmission:
    """Test suite for building MoodRecords from submissions."""

    def test_country_is_trimmed_and_upper_cased(self):
        assert normalize_country(" it ") == "IT"
        assert normalize_country("us") == "US"

    def test_invalid_country_becomes_none(self):
        assert normalize_country(None) is None
        assert normalize_country("") is None
        assert normalize_country("ITA") is None
        assert normalize_country("1A") is None

    def test_defaults(self):
        record = normalize_submission(MoodSubmission(emoji="😄"), now=FIXED_NOW)

        assert record.emoji == "😄"
        assert record.timestamp == "2026-10-19T12:00:00.000Z"
        assert record.label is None
        assert record.country is None
        assert record.reason is None
        assert record.latitude is None

    def test_full_submission(self):
        submission = MoodSubmission.model_validate(
            {
                "emoji": "😢",
                "label": "Sad",
                "timestamp": "2026-10-18T08:30:00.000Z",
                "country": "fr ",
                "region": "Île-de-France",
                "latitude": 48.85,
                "longitude": 2.35,
                "reason": "rainy\nmonday",
                "deviceId": "abc-123",
            }
        )
        record = normalize_submission(submission, now=FIXED_NOW)

        assert submission.device_id == "abc-123"
        assert record.timestamp == "2026-10-18T08:30:00.000Z"
        assert record.country == "FR"
        assert record.region == "Île-de-France"
        assert record.latitude == 48.85
        assert record.reason == "rainy monday"
        assert "device_id" not in record.model_dump()

    def test_device_id_defaults_to_unknown(self):
        assert MoodSubmission(emoji="🙂").device_id == "unknown"

    def test_utc_timestamp_converts_offsets(self):
        local = datetime.fromisoformat("2026-10-19T14:00:00+02:00")
        assert utc_timestamp(local) == "2026-10-19T12:00:00.000Z"
