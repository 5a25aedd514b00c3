"""
Aggregate statistics over stored mood records.

Two families of aggregates are computed here: geographic and mood counts for
the map (``aggregate_stats``) and ranked reason phrases for the word cloud
(``aggregate_reasons``). Both are pure functions of the records they are given
and never raise on empty input.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

from .models import MoodRecord, PhraseCount, TrendingMood
from .phrases import extract_phrases

TIME_RANGES = ("day", "week", "month", "all")
TOP_GLOBAL_PHRASES = 100
TOP_COUNTRY_PHRASES = 50
UNKNOWN = "Unknown"

COUNTRY_TO_CONTINENT = {
    "US": "North America",
    "CA": "North America",
    "MX": "North America",
    "BR": "South America",
    "AR": "South America",
    "GB": "Europe",
    "FR": "Europe",
    "DE": "Europe",
    "IT": "Europe",
    "ES": "Europe",
    "RU": "Europe/Asia",
    "CN": "Asia",
    "JP": "Asia",
    "IN": "Asia",
    "AU": "Oceania",
    "NZ": "Oceania",
    "ZA": "Africa",
    "EG": "Africa",
}


# MARK: - Time windows


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def window_start(time_range: str | None, now: datetime | None = None) -> datetime | None:
    """
    Return the inclusive start of a time window.

    ``day`` starts at today's UTC midnight, ``week`` six days earlier and
    ``month`` twenty-nine days earlier. ``None`` and ``all`` have no start.

    Raises:
        ValueError: For an unknown time range
    """
    if time_range in (None, "", "all"):
        return None
    if time_range not in TIME_RANGES:
        raise ValueError(f"Unknown time range: {time_range}")

    now = (now or _utc_now()).astimezone(timezone.utc)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    days_back = {"day": 0, "week": 6, "month": 29}[time_range]
    return midnight - timedelta(days=days_back)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is given."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def filter_records(
    records: Iterable[MoodRecord],
    time_range: str | None = None,
    country: str | None = None,
    now: datetime | None = None,
) -> list[MoodRecord]:
    """Keep records inside the time window and, optionally, one country."""
    start = window_start(time_range, now)
    wanted = country.strip().upper() if country else None

    selected = []
    for record in records:
        if wanted and (record.country or "").upper() != wanted:
            continue
        if start is not None:
            stamp = parse_timestamp(record.timestamp)
            if stamp is None or stamp < start:
                continue
        selected.append(record)
    return selected


# MARK: - Helpers


def country_key(code: str | None) -> str:
    code = (code or "").strip().upper()
    return code or UNKNOWN


def continent_for(code: str | None) -> str:
    if not code or code == UNKNOWN:
        return UNKNOWN
    return COUNTRY_TO_CONTINENT.get(code.upper(), "Other")


def mood_key(record: MoodRecord) -> str:
    return record.emoji or record.label or UNKNOWN


def _increment(counter: dict[str, int], key: str) -> None:
    counter[key] = counter.get(key, 0) + 1


def rank(counter: dict[str, int], limit: int) -> list[PhraseCount]:
    """Sort by descending count; equal counts keep first-seen order."""
    ordered = sorted(counter.items(), key=lambda item: item[1], reverse=True)
    return [PhraseCount(phrase=phrase, count=count) for phrase, count in ordered[:limit]]


def trending_moods(
    records: Iterable[MoodRecord], now: datetime | None = None
) -> list[TrendingMood]:
    """
    Compare each mood's count in the last 24 hours to the 24 hours before.

    The percent change is ``None`` when the mood had no previous submissions.
    """
    now = (now or _utc_now()).astimezone(timezone.utc)
    day_ago = now - timedelta(hours=24)
    two_days_ago = now - timedelta(hours=48)

    current: dict[str, int] = {}
    previous: dict[str, int] = {}
    for record in records:
        stamp = parse_timestamp(record.timestamp)
        if stamp is None or stamp > now:
            continue
        if stamp > day_ago:
            _increment(current, mood_key(record))
        elif stamp > two_days_ago:
            _increment(previous, mood_key(record))

    trends = []
    for mood in {**current, **previous}:
        now_count = current.get(mood, 0)
        before = previous.get(mood, 0)
        delta = now_count - before
        pct = round(delta / before * 100, 1) if before else None
        trends.append(
            TrendingMood(
                mood=mood, current=now_count, previous=before, delta=delta, pct=pct
            )
        )
    trends.sort(key=lambda trend: trend.delta, reverse=True)
    return trends


# MARK: - Aggregates


def empty_stats() -> dict[str, Any]:
    return {
        "total": 0,
        "byCountry": {},
        "byContinent": {},
        "byMood": {},
        "byCountryMood": {},
        "byMoodAndContinent": {},
        "dominantByCountry": {},
        "trending": [],
    }


def aggregate_stats(
    records: Iterable[MoodRecord],
    time_range: str | None = None,
    country: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Count moods per country, continent and mood.

    Args:
        records: Stored mood records
        time_range: ``day``, ``week``, ``month`` or ``all``/None
        country: Optional country code to restrict to
        now: Clock override

    Returns:
        A JSON-ready dict with totals, breakdowns and 24h trending moods
    """
    records = list(records)
    selected = filter_records(records, time_range, country, now)
    stats = empty_stats()
    stats["total"] = len(selected)

    for record in selected:
        code = country_key(record.country)
        continent = continent_for(code)
        mood = mood_key(record)

        _increment(stats["byCountry"], code)
        _increment(stats["byContinent"], continent)
        _increment(stats["byMood"], mood)
        _increment(stats["byCountryMood"].setdefault(code, {}), mood)
        _increment(stats["byMoodAndContinent"].setdefault(continent, {}), mood)

    for code, moods in stats["byCountryMood"].items():
        stats["dominantByCountry"][code] = max(moods, key=moods.__getitem__)

    # Trending always looks at the last 48 hours, whatever the time range.
    in_country = filter_records(records, None, country, now)
    stats["trending"] = [trend.model_dump() for trend in trending_moods(in_country, now)]
    return stats


def empty_reasons(time_range: str | None = None) -> dict[str, Any]:
    return {"global": [], "byCountry": {}, "total": 0, "timeRange": time_range or "all"}


def aggregate_reasons(
    records: Iterable[MoodRecord],
    time_range: str | None = None,
    country: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Rank the phrases found in reasons, globally and per country.

    Records without a reason of at least two characters are skipped.

    Returns:
        A JSON-ready dict with the top 100 global phrases, the top 50 per
        country, the number of records considered and the time range used
    """
    selected = filter_records(records, time_range, country, now)

    global_counts: dict[str, int] = {}
    country_counts: dict[str, dict[str, int]] = {}

    for record in selected:
        if not record.reason or len(record.reason.strip()) < 2:
            continue

        phrases = extract_phrases(record.reason)
        per_country = country_counts.setdefault(country_key(record.country), {})
        for phrase in phrases:
            _increment(global_counts, phrase)
            _increment(per_country, phrase)

    result = empty_reasons(time_range)
    result["global"] = [item.model_dump() for item in rank(global_counts, TOP_GLOBAL_PHRASES)]
    result["byCountry"] = {
        code: [item.model_dump() for item in rank(counts, TOP_COUNTRY_PHRASES)]
        for code, counts in country_counts.items()
    }
    result["total"] = len(selected)
    return result
