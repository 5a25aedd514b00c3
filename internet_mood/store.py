"""
Mood storage for the Internet Mood service.

Records go to a hosted Postgres table (``moods``) through the Supabase REST
API. When that store cannot be reached, the record is appended to a local JSON
file instead. Writes report their outcome as a ``WriteResult`` and never raise,
so callers branch on the result rather than on exceptions.

The module also holds ``MoodFeed``, an in-memory fan-out of accepted records
to live subscribers.
"""

import asyncio
import json
import logging
import os
import secrets
import string
import time
from collections import deque
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager
from typing import Any

import httpx
from pydantic import ValidationError

from .config import Settings
from .errors import AggregationReadError
from .models import MoodRecord, WriteResult

logger = logging.getLogger(__name__)

TABLE = "moods"
RECORD_FIELDS = (
    "emoji",
    "label",
    "timestamp",
    "country",
    "region",
    "latitude",
    "longitude",
    "reason",
)

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(number: int) -> str:
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_id() -> str:
    """Time-ordered unique id: base36 milliseconds plus a random suffix."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return _to_base36(int(time.time() * 1000)) + suffix


def parse_records(rows: Iterable[Any]) -> list[MoodRecord]:
    """Turn raw rows into records, skipping rows that are not valid moods."""
    records = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        try:
            records.append(
                MoodRecord.model_validate({k: row.get(k) for k in RECORD_FIELDS})
            )
        except ValidationError:
            logger.warning("[STORE] Skipping malformed row: %r", row)
    return records


# MARK: - Primary store


class SupabaseStore:
    """
    Client for the ``moods`` table exposed by Supabase's REST API.

    Every request carries a bounded timeout and is attempted once.
    """

    source = "primary-store"

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=f"{url.rstrip('/')}/rest/v1",
            headers={"apikey": key, "Authorization": f"Bearer {key}"},
            timeout=timeout,
            transport=transport,
        )

    async def insert(self, records: list[MoodRecord]) -> WriteResult:
        """Insert *records* in one request."""
        payload = [record.model_dump() for record in records]
        try:
            response = await self._client.post(
                f"/{TABLE}", json=payload, headers={"Prefer": "return=minimal"}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("[STORE] Primary insert failed: %s", e)
            return WriteResult(ok=False, source=self.source, error=str(e) or type(e).__name__)

        return WriteResult(
            ok=True, source=self.source, record=records[0] if records else None
        )

    async def select(
        self, since: str | None = None, country: str | None = None
    ) -> list[MoodRecord]:
        """
        Fetch records, optionally from a timestamp onwards and for one country.

        Raises:
            AggregationReadError: If the store cannot be read
        """
        params = {"select": ",".join(RECORD_FIELDS)}
        if since:
            params["timestamp"] = f"gte.{since}"
        if country:
            params["country"] = f"eq.{country.strip().upper()}"

        try:
            response = await self._client.get(f"/{TABLE}", params=params)
            response.raise_for_status()
            rows = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise AggregationReadError(f"Primary store read failed: {e}") from e

        if not isinstance(rows, list):
            raise AggregationReadError("Primary store returned an unexpected payload")
        return parse_records(rows)

    async def count(self) -> int:
        """
        Return the number of rows in the table.

        Raises:
            AggregationReadError: If the store cannot be read
        """
        try:
            response = await self._client.get(
                f"/{TABLE}",
                params={"select": "emoji", "limit": "1"},
                headers={"Prefer": "count=exact"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise AggregationReadError(f"Primary store count failed: {e}") from e

        content_range = response.headers.get("content-range", "")
        total = content_range.rpartition("/")[2]
        if total.isdigit():
            return int(total)
        return len(response.json())

    async def aclose(self) -> None:
        await self._client.aclose()


# MARK: - Fallback file


class FallbackFileStore:
    """
    Append-only JSON array file used when the primary store is unavailable.

    Each appended record receives a generated ``id``.
    """

    source = "fallback-file"

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = asyncio.Lock()

    def _load_rows(self) -> list[Any]:
        """
        Load the stored rows; a missing file holds none.

        Raises:
            OSError: If the file exists but cannot be read
            ValueError: If the file is not a JSON array
        """
        try:
            with open(self.path, encoding="utf-8") as f:
                rows = json.load(f)
        except FileNotFoundError:
            return []
        if not isinstance(rows, list):
            raise ValueError("expected a JSON array")
        return rows

    def _read_rows(self) -> list[Any]:
        try:
            return self._load_rows()
        except (OSError, ValueError) as e:
            logger.warning("[STORE] Could not read %s: %s", self.path, e)
            return []

    def _write_rows(self, rows: list[Any]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(rows, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, self.path)

    def _append_row(self, row: dict[str, Any]) -> None:
        try:
            rows = self._load_rows()
        except ValueError as e:
            # Keep the unparseable file for manual recovery and start a new one.
            corrupt_path = f"{self.path}.corrupt-{int(time.time() * 1000)}"
            os.replace(self.path, corrupt_path)
            logger.error(
                "[STORE] %s is not a JSON array (%s), moved to %s", self.path, e, corrupt_path
            )
            rows = []
        rows.append(row)
        self._write_rows(rows)

    async def append(self, record: MoodRecord) -> WriteResult:
        row = {"id": generate_id(), **record.model_dump()}
        async with self._lock:
            try:
                await asyncio.to_thread(self._append_row, row)
            except OSError as e:
                logger.error("[STORE] Fallback write to %s failed: %s", self.path, e)
                return WriteResult(ok=False, source=self.source, error=str(e))

        return WriteResult(ok=True, source=self.source, record=record)

    async def read_all(self) -> list[MoodRecord]:
        async with self._lock:
            rows = await asyncio.to_thread(self._read_rows)
        return parse_records(rows)


# MARK: - Repository


class MoodRepository:
    """
    Two-stage persistence: the primary store first, the fallback file second.
    """

    def __init__(
        self, primary: SupabaseStore | None, fallback: FallbackFileStore
    ) -> None:
        self.primary = primary
        self.fallback = fallback

    @property
    def backend(self) -> str:
        return "supabase" if self.primary else "file"

    async def save(self, record: MoodRecord) -> WriteResult:
        """
        Store one record.

        Returns:
            The successful result of either stage, or a failed result that
            combines both error messages
        """
        primary_error = "primary store not configured"
        if self.primary is not None:
            result = await self.primary.insert([record])
            if result.ok:
                return result
            primary_error = result.error or "unknown error"

        fallback_result = await self.fallback.append(record)
        if fallback_result.ok:
            logger.info("[STORE] Saved to fallback file (%s)", primary_error)
            return fallback_result

        return WriteResult(
            ok=False,
            error=f"primary: {primary_error}; fallback: {fallback_result.error}",
        )

    async def load(
        self, since: str | None = None, country: str | None = None
    ) -> list[MoodRecord]:
        """
        Read records for aggregation.

        Raises:
            AggregationReadError: If the primary store cannot be read
        """
        if self.primary is not None:
            return await self.primary.select(since=since, country=country)
        return await self.fallback.read_all()

    async def migrate(self, run: bool = True) -> dict[str, Any]:
        """
        Copy fallback file records into an empty primary store.

        Args:
            run: When False, only report the current state

        Raises:
            AggregationReadError: If the primary store cannot be counted
        """
        if self.primary is None:
            return {"ok": False, "reason": "Primary store not configured"}

        existing = await self.primary.count()
        if not run:
            return {
                "ok": True,
                "existing": existing,
                "hint": "Add ?run=1 to execute migration if table empty",
            }
        if existing > 0:
            return {
                "ok": False,
                "skipped": True,
                "reason": "Table already has data",
                "existing": existing,
            }

        records = await self.fallback.read_all()
        if not records:
            return {"ok": False, "reason": "Local file empty", "file": self.fallback.path}

        result = await self.primary.insert(records)
        if not result.ok:
            return {"ok": False, "error": result.error}
        logger.info("[MIGRATE] Inserted %d records", len(records))
        return {"ok": True, "inserted": len(records)}

    async def aclose(self) -> None:
        if self.primary is not None:
            await self.primary.aclose()


# MARK: - Live feed


class MoodFeed:
    """
    In-memory fan-out of newly accepted moods.

    Subscribers wait on a condition variable and receive the records published
    after they subscribed. A subscriber that falls more than ``backlog``
    records behind only gets the most recent ones.
    """

    def __init__(self, backlog: int = 100) -> None:
        self._recent: deque[MoodRecord] = deque(maxlen=backlog)
        self._condition = asyncio.Condition()
        self._update_counter = 0

    async def publish(self, record: MoodRecord) -> None:
        async with self._condition:
            self._recent.append(record)
            self._update_counter += 1
            self._condition.notify_all()

    @asynccontextmanager
    async def stream(self) -> AsyncGenerator[AsyncGenerator[MoodRecord, None], None]:
        """
        Subscribe to new moods.

        Yields:
            An async generator of MoodRecord objects
        """

        async def mood_generator() -> AsyncGenerator[MoodRecord, None]:
            async with self._condition:
                last_seen_counter = self._update_counter

            try:
                while True:
                    async with self._condition:
                        await self._condition.wait_for(
                            lambda: self._update_counter > last_seen_counter
                        )
                        missed = self._update_counter - last_seen_counter
                        last_seen_counter = self._update_counter
                        fresh = list(self._recent)[-missed:]
                    for record in fresh:
                        yield record
            except (asyncio.CancelledError, GeneratorExit):
                return

        yield mood_generator()


def build_repository(settings: Settings) -> MoodRepository:
    """Create the repository described by *settings*."""
    primary = None
    if settings.has_primary_store:
        primary = SupabaseStore(
            settings.supabase_url, settings.supabase_key, timeout=settings.store_timeout
        )
    return MoodRepository(primary, FallbackFileStore(settings.fallback_file))
