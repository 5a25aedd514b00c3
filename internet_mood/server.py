"""
FastAPI server for the Internet Mood service.

This module implements the HTTP API: mood submissions (rate limited and
normalized), aggregate statistics for the map, ranked reason phrases, a live
Server-Sent Events feed of new moods and the fallback-file migration.
"""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from .aggregation import (
    aggregate_reasons,
    aggregate_stats,
    empty_reasons,
    empty_stats,
    window_start,
)
from .config import Settings
from .errors import AggregationReadError, InvalidPayload, PersistenceError, RateLimitExceeded
from .models import MoodSubmission
from .normalize import normalize_submission, utc_timestamp
from .ratelimit import RateLimiter, client_address, rate_limit_key
from .store import MoodFeed, MoodRepository, build_repository

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def create_app(
    repository: MoodRepository,
    rate_limiter: RateLimiter | None = None,
    feed: MoodFeed | None = None,
    clock: Callable[[], datetime] = _utc_now,
) -> FastAPI:
    """
    Create a FastAPI application.

    Args:
        repository: Where moods are stored and read from
        rate_limiter: Daily submission limiter, one per process
        feed: Live feed of accepted moods
        clock: Source of the current time for time windows

    Returns:
        Configured FastAPI application
    """
    rate_limiter = rate_limiter or RateLimiter(clock=clock)
    feed = feed or MoodFeed()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Lifespan context manager for FastAPI application."""
        logger.info("[STARTUP] Storage backend: %s", repository.backend)
        yield
        await repository.aclose()

    app = FastAPI(
        title="Internet Mood",
        description="Anonymous mood map with aggregate statistics",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.rate_limiter = rate_limiter
    app.state.feed = feed

    # MARK: - Error handlers

    @app.exception_handler(InvalidPayload)
    async def invalid_payload_handler(request: Request, exc: InvalidPayload) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"ok": False, "error": "invalid_payload", "detail": str(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Malformed JSON and missing fields both end up here.
        details = [str(error.get("msg", "")) for error in exc.errors()]
        return await invalid_payload_handler(request, InvalidPayload("; ".join(details)))

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={
                "ok": False,
                "error": "rate_limited",
                "limit": exc.limit,
                "current": exc.current,
                "retryAfterHours": exc.retry_after_hours,
            },
            headers={"Retry-After": str(exc.retry_after_hours * 3600)},
        )

    @app.exception_handler(PersistenceError)
    async def persistence_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": "persistence_failed", "detail": str(exc)},
        )

    def _time_range(value: str | None) -> str | None:
        try:
            window_start(value)
        except ValueError as e:
            raise InvalidPayload(str(e)) from e
        return value if value not in ("", "all") else None

    # MARK: - Endpoints

    @app.get("/")
    async def root() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "internet-mood"}

    @app.post("/api/mood")
    async def submit_mood(submission: MoodSubmission, request: Request) -> dict[str, Any]:
        """
        Store a mood submission.

        Returns:
            The stored record and which store accepted it
        """
        key = rate_limit_key(client_address(request.headers), submission.device_id)
        record = normalize_submission(submission, now=clock())

        async with rate_limiter.slot(key) as slot:
            result = await repository.save(record)
            if not result.ok:
                logger.error("[MOOD] Could not store mood: %s", result.error)
                raise PersistenceError(result.error)
            slot.commit()

        await feed.publish(record)
        return {"ok": True, "source": result.source, "mood": record.model_dump()}

    @app.get("/api/stats")
    async def stats(
        timeRange: str | None = None, country: str | None = None, debug: str | None = None
    ) -> dict[str, Any]:
        """
        Aggregate counts per country, continent and mood plus 24h trends.

        Read failures produce zeroed statistics with an ``error`` message.
        """
        time_range = _time_range(timeRange)
        now = clock()
        start = window_start(time_range, now)
        since_stamp = None
        if start is not None:
            # Trending needs the previous 48 hours even for the "day" window.
            since_stamp = utc_timestamp(min(start, now - timedelta(hours=48)))

        try:
            records = await repository.load(since=since_stamp, country=country)
        except AggregationReadError as e:
            logger.error("[STATS] Read failed: %s", e)
            return {**empty_stats(), "error": str(e)}

        payload = aggregate_stats(records, time_range, country, now)
        if debug == "1":
            payload["__debug"] = {
                "backend": repository.backend,
                "fallbackFile": repository.fallback.path,
                "countriesPresent": list(payload["byCountry"]),
                "sampleFirst": [record.model_dump() for record in records[:3]],
            }
        return payload

    @app.get("/api/stats/reasons")
    async def reasons(timeRange: str | None = None, country: str | None = None) -> dict[str, Any]:
        """Rank the phrases used in reasons, globally and per country."""
        time_range = _time_range(timeRange)
        now = clock()
        start = window_start(time_range, now)

        try:
            records = await repository.load(
                since=utc_timestamp(start) if start else None, country=country
            )
        except AggregationReadError as e:
            logger.error("[REASONS] Read failed: %s", e)
            return {**empty_reasons(time_range), "error": str(e)}

        return aggregate_reasons(records, time_range, country, now)

    @app.get("/api/mood/stream")
    async def stream_moods() -> StreamingResponse:
        """
        Stream newly accepted moods via Server-Sent Events.

        Returns:
            StreamingResponse with text/event-stream content type
        """

        async def event_generator() -> AsyncGenerator[str, None]:
            try:
                async with feed.stream() as mood_stream:
                    async for record in mood_stream:
                        data = json.dumps(record.model_dump(), ensure_ascii=False)
                        yield f"data: {data}\n\n"
            except asyncio.CancelledError:
                pass
            except Exception as e:
                error_data = json.dumps({"error": str(e)})
                yield f"event: error\ndata: {error_data}\n\n"

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "Access-Control-Allow-Origin": "*",
                "Access-Control-Allow-Headers": "*",
            },
        )

    async def _migrate(run: bool) -> JSONResponse:
        try:
            result = await repository.migrate(run=run)
        except AggregationReadError as e:
            return JSONResponse(status_code=500, content={"ok": False, "error": str(e)})
        status_code = 500 if "error" in result else 200
        return JSONResponse(status_code=status_code, content=result)

    @app.get("/api/migrate")
    async def migrate_status(run: str | None = None) -> JSONResponse:
        """Report migration state, or migrate with ``?run=1``."""
        return await _migrate(run == "1")

    @app.post("/api/migrate")
    async def migrate() -> JSONResponse:
        """Copy fallback file records into an empty primary store."""
        return await _migrate(True)

    return app


settings = Settings.from_env()
app = create_app(build_repository(settings), RateLimiter(limit=settings.daily_limit))


def main() -> None:
    """Main entry point for the server."""
    import uvicorn

    logging.basicConfig(level=settings.log_level)
    uvicorn.run(
        "internet_mood.server:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
