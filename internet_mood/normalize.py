"""
Turn raw client submissions into canonical mood records.
"""

import re
from datetime import datetime, timezone

from .models import MoodRecord, MoodSubmission

REASON_MAX_LENGTH = 30

_LINE_BREAKS = re.compile(r"[\r\n\t]+")
_MULTI_SPACE = re.compile(r"\s{2,}")
_COUNTRY_CODE = re.compile(r"^[A-Z]{2}$")


def utc_timestamp(now: datetime | None = None) -> str:
    """Format *now* (default: current time) as ISO-8601 UTC with milliseconds."""
    now = now or datetime.now(timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sanitize_reason(raw: str | None) -> str | None:
    """
    Clean a free-text reason.

    The text is cut to ``REASON_MAX_LENGTH`` characters before cleaning, so a
    trailing word may end up partially cut.

    Args:
        raw: The reason as sent by the client

    Returns:
        The cleaned reason, or None when nothing is left
    """
    if raw is None or not raw.strip():
        return None

    reason = raw[:REASON_MAX_LENGTH]
    reason = _LINE_BREAKS.sub(" ", reason)
    reason = _MULTI_SPACE.sub(" ", reason)
    reason = reason.strip()
    return reason or None


def normalize_country(raw: str | None) -> str | None:
    if raw is None:
        return None
    code = str(raw).strip().upper()
    return code if _COUNTRY_CODE.match(code) else None


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def normalize_submission(
    submission: MoodSubmission, now: datetime | None = None
) -> MoodRecord:
    """
    Build the stored record for a submission.

    Args:
        submission: The validated client payload
        now: Clock override used when the payload carries no timestamp

    Returns:
        An immutable MoodRecord
    """
    return MoodRecord(
        emoji=submission.emoji,
        label=_blank_to_none(submission.label),
        timestamp=submission.timestamp or utc_timestamp(now),
        country=normalize_country(submission.country),
        region=_blank_to_none(submission.region),
        latitude=submission.latitude,
        longitude=submission.longitude,
        reason=sanitize_reason(submission.reason),
    )
