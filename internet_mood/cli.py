"""
Command-line interface tools for the Internet Mood service.
"""

import asyncio
import json
import random
from collections.abc import Coroutine
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import typer
from httpx_sse import ServerSentEvent, aconnect_sse

from .config import Settings
from .models import MoodRecord
from .normalize import utc_timestamp
from .store import build_repository

DEFAULT_BASE_URL = "http://localhost:8000"
SEED_CHUNK_SIZE = 150

app = typer.Typer(help="Internet Mood CLI tools")


# MARK: - CLI Entry Points


def cli_submit() -> None:
    """Entry point for mood-submit CLI command."""
    typer.run(submit)


def cli_stats() -> None:
    """Entry point for mood-stats CLI command."""
    typer.run(stats)


def cli_reasons() -> None:
    """Entry point for mood-reasons CLI command."""
    typer.run(reasons)


def cli_stream() -> None:
    """Entry point for mood-stream CLI command."""
    typer.run(stream)


def cli_seed() -> None:
    """Entry point for mood-seed CLI command."""
    typer.run(seed)


# MARK: - Commands


@app.command()
def submit(
    emoji: str = typer.Argument(..., help="The mood emoji to submit"),
    label: str | None = typer.Option(None, "--label", "-l", help="Mood label"),
    reason: str | None = typer.Option(None, "--reason", "-r", help="Why (max 30 chars)"),
    country: str | None = typer.Option(None, "--country", "-c", help="Country code"),
    device_id: str = typer.Option("cli", "--device", "-d", help="Device identifier"),
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the Internet Mood service"
    ),
) -> None:
    """Submit a mood to the Internet Mood service."""

    async def _submit() -> None:
        payload = {
            "emoji": emoji,
            "label": label,
            "reason": reason,
            "country": country,
            "deviceId": device_id,
        }
        async with httpx.AsyncClient() as client:
            response = await client.post(f"{base_url}/api/mood", json=payload)
            if response.status_code == 429:
                result = response.json()
                print(
                    f"Daily limit reached ({result['current']}/{result['limit']}), "
                    f"retry in {result['retryAfterHours']}h"
                )
                raise typer.Exit(1)
            response.raise_for_status()
            result = response.json()
            print(f"Mood {result['mood']['emoji']} stored ({result['source']})")

    _run_with_error_handling(_submit(), base_url)


@app.command()
def stats(
    time_range: str = typer.Option("all", "--range", "-t", help="day, week, month or all"),
    country: str | None = typer.Option(None, "--country", "-c", help="Country code"),
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the Internet Mood service"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output raw JSON"),
) -> None:
    """Show aggregate mood statistics."""

    async def _stats() -> None:
        result = await _get_json(
            base_url, "/api/stats", {"timeRange": time_range, "country": country}
        )
        if json_output:
            print(json.dumps(result, indent=2, ensure_ascii=False))
            return

        print(f"Total moods: {result['total']}")
        for mood, count in _top(result["byMood"]):
            print(f"  {mood} {count}")
        if result["byCountry"]:
            print("Countries:")
            for code, count in _top(result["byCountry"]):
                dominant = result["dominantByCountry"].get(code, "")
                print(f"  {code:<8} {count:>6} {dominant}")
        if result["trending"]:
            print("Trending (24h):")
            for trend in result["trending"]:
                pct = "new" if trend["pct"] is None else f"{trend['pct']:+}%"
                print(f"  {trend['mood']} {trend['delta']:+} ({pct})")

    _run_with_error_handling(_stats(), base_url)


@app.command()
def reasons(
    time_range: str = typer.Option("all", "--range", "-t", help="day, week, month or all"),
    country: str | None = typer.Option(None, "--country", "-c", help="Country code"),
    limit: int = typer.Option(20, "--limit", "-n", help="How many phrases to show"),
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the Internet Mood service"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output raw JSON"),
) -> None:
    """Show the most common reason phrases."""

    async def _reasons() -> None:
        result = await _get_json(
            base_url, "/api/stats/reasons", {"timeRange": time_range, "country": country}
        )
        if json_output:
            print(json.dumps(result, indent=2, ensure_ascii=False))
            return

        if not result["global"]:
            print("No reasons yet")
            return
        for item in result["global"][:limit]:
            print(f"{item['count']:>6}  {item['phrase']}")

    _run_with_error_handling(_reasons(), base_url)


@app.command()
def stream(
    base_url: str = typer.Option(
        DEFAULT_BASE_URL, "--url", "-u", help="Base URL of the Internet Mood service"
    ),
) -> None:
    """Stream new moods in real-time."""

    async def _stream() -> None:
        print(f"Streaming from {base_url}/api/mood/stream... (Ctrl+C to stop)")

        async with httpx.AsyncClient(timeout=None) as client:
            async with aconnect_sse(
                client, "GET", f"{base_url}/api/mood/stream"
            ) as event_source:
                async for sse in event_source.aiter_sse():
                    _handle_sse_event(sse)

    _run_with_error_handling(_stream(), base_url)


@app.command()
def seed(
    count: int = typer.Option(600, "--count", "-n", min=1, help="Records to generate"),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Print the first records instead of storing them"
    ),
) -> None:
    """Store synthetic mood records for demos and load testing."""
    records = build_seed(count)

    if dry_run:
        preview = [record.model_dump() for record in records[:25]]
        print(json.dumps(preview, indent=2, ensure_ascii=False))
        return

    async def _seed() -> None:
        repository = build_repository(Settings.from_env())
        try:
            if repository.primary is None:
                for record in records:
                    result = await repository.fallback.append(record)
                    if not result.ok:
                        raise RuntimeError(f"Fallback write failed: {result.error}")
                print(f"Stored {len(records)} records in {repository.fallback.path}")
                return

            for start in range(0, len(records), SEED_CHUNK_SIZE):
                chunk = records[start : start + SEED_CHUNK_SIZE]
                result = await repository.primary.insert(chunk)
                if not result.ok:
                    raise RuntimeError(f"Insert error: {result.error}")
                print(f"Inserted {start + len(chunk)}/{len(records)}")
        finally:
            await repository.aclose()

    _run_with_error_handling(_seed(), "the mood store")


# MARK: - Seed data

CONTINENT_DIST = {
    "Europe": 0.30,
    "Americas": 0.30,
    "Asia": 0.25,
    "Africa": 0.10,
    "Oceania": 0.05,
}

SEED_MOODS = {
    "😄": 22,
    "🙂": 15,
    "😐": 12,
    "🤔": 10,
    "🤩": 8,
    "😎": 8,
    "😢": 10,
    "😴": 5,
    "😡": 5,
    "😭": 5,
}

SEED_COUNTRIES = {
    "Europe": ["IT", "FR", "DE", "ES", "GB", "NL", "SE", "PL", "GR", "PT",
               "RO", "HU", "CZ", "BE", "DK", "FI", "IE", "AT", "CH", "NO"],
    "Americas": ["US", "CA", "MX", "BR", "AR", "CO", "CL", "PE", "VE", "UY",
                 "BO", "EC", "CR", "PA", "GT", "HN", "NI", "SV", "DO", "PR"],
    "Asia": ["CN", "JP", "KR", "IN", "ID", "TH", "VN", "PH", "MY", "SG",
             "TW", "HK", "PK", "BD", "UZ", "KZ", "SA", "AE", "IL", "TR"],
    "Africa": ["ZA", "NG", "EG", "KE", "MA", "DZ", "TN", "GH", "ET", "UG",
               "TZ", "SN", "CI", "CM", "ZM", "ZW", "BW", "NA", "RW", "SD"],
    "Oceania": ["AU", "NZ", "FJ", "PG", "WS", "TO", "VU", "NC", "PF", "GU"],
}

SEED_REASONS = [
    None, None, None, "good weather today", "hard day at work", "family time",
    "monday blues", "great news!", "feeling tired", "exam results", "coffee",
    "late night gaming", "sunny day at the beach", "work stress again",
]


def _random_timestamp(now: datetime, rng: random.Random) -> str:
    """Recent-weighted timestamp within the last two weeks."""
    bucket = rng.random()
    if bucket < 0.35:
        day_offset = rng.randrange(0, 2)
    elif bucket < 0.75:
        day_offset = rng.randrange(2, 7)
    else:
        day_offset = rng.randrange(7, 14)
    spread = timedelta(milliseconds=rng.randrange(6 * 60 * 60 * 1000))
    return utc_timestamp(now - timedelta(days=day_offset) - spread)


def build_seed(
    count: int, now: datetime | None = None, rng: random.Random | None = None
) -> list[MoodRecord]:
    """Generate *count* synthetic records spread over continents and moods."""
    now = now or datetime.now(timezone.utc)
    rng = rng or random.Random()

    per_continent = {name: round(count * share) for name, share in CONTINENT_DIST.items()}
    per_continent["Europe"] += count - sum(per_continent.values())

    moods = list(SEED_MOODS)
    weights = list(SEED_MOODS.values())
    records = []
    for continent, target in per_continent.items():
        pool = SEED_COUNTRIES[continent]
        for _ in range(target):
            records.append(
                MoodRecord(
                    emoji=rng.choices(moods, weights)[0],
                    timestamp=_random_timestamp(now, rng),
                    country=rng.choice(pool),
                    reason=rng.choice(SEED_REASONS),
                )
            )
    return records


# MARK: - Private Helpers


def _top(counts: dict[str, int], limit: int = 10) -> list[tuple[str, int]]:
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)[:limit]


async def _get_json(base_url: str, path: str, params: dict[str, Any]) -> dict[str, Any]:
    """GET *path* and return its JSON body, dropping empty query params."""
    query = {key: value for key, value in params.items() if value}
    async with httpx.AsyncClient() as client:
        response = await client.get(f"{base_url}{path}", params=query)
        response.raise_for_status()
        result = response.json()
    if "error" in result:
        print(f"Warning: {result['error']}")
    return result


def _format_record(record: MoodRecord) -> str:
    """Format a streamed mood with its time and place."""
    stamp = record.timestamp[11:19] if len(record.timestamp) >= 19 else record.timestamp
    place = record.country or "??"
    line = f"{stamp} {place} > {record.emoji}"
    if record.reason:
        line += f"  \"{record.reason}\""
    return line


def _handle_sse_event(sse: ServerSentEvent) -> None:
    """Handle a single SSE event."""
    try:
        if sse.event == "error":
            error_data = json.loads(sse.data)
            print(f"Server error: {error_data.get('error', 'Unknown error')}")
            return

        raw_data = json.loads(sse.data)
        record = MoodRecord.model_validate(raw_data)
        print(_format_record(record))

    except json.JSONDecodeError as e:
        print(f"Warning: Could not parse SSE data: {sse.data} - {e}")
    except Exception as e:
        print(f"Warning: Error processing mood data: {e}")


def _run_with_error_handling(coro: Coroutine[Any, Any, Any], base_url: str) -> None:
    """Run an async coroutine with standardized error handling."""
    try:
        asyncio.run(coro)
    except KeyboardInterrupt:
        print("\nStopped")
        raise typer.Exit(0)
    except typer.Exit:
        raise
    except httpx.ConnectError:
        print(f"Error: Could not connect to {base_url}")
        raise typer.Exit(1)
    except httpx.HTTPStatusError as e:
        print(f"Error: HTTP {e.response.status_code}")
        raise typer.Exit(1)
    except Exception as e:
        error_msg = str(e) if str(e) else f"Unknown error of type {type(e).__name__}"
        print(f"Error: {error_msg}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
