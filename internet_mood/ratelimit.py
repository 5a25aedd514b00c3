"""
Daily submission limits for anonymous clients.

Clients are identified by their network address and a device identifier they
send along with each mood. Counters live in process memory only: they are lost
on restart and are not shared between service instances, so this is a soft
anti-abuse measure rather than a security control.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator, Callable, Mapping
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from .errors import RateLimitExceeded
from .models import RateLimitEntry

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 5
RETRY_AFTER_HOURS = 24
UNKNOWN_ADDRESS = "unknown"


def client_address(headers: Mapping[str, str]) -> str:
    """Resolve the client address from proxy headers."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return UNKNOWN_ADDRESS


def rate_limit_key(address: str, device_id: str | None) -> str:
    return f"{address}:{device_id or 'unknown'}"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Slot:
    """A reserved submission slot; call ``commit`` once the mood is stored."""

    def __init__(self, key: str, day: str) -> None:
        self.key = key
        self.day = day
        self.committed = False

    def commit(self) -> None:
        self.committed = True


class RateLimiter:
    """
    Per-client daily counter.

    The limit check and the slot reservation happen under one lock, and the
    counter is only incremented when the reserved slot is committed. Slots that
    are still in flight count against the limit, so concurrent requests for the
    same key can never exceed it together.
    """

    def __init__(
        self,
        limit: int = DEFAULT_DAILY_LIMIT,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.limit = limit
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}
        self._pending: dict[str, int] = {}
        self._lock = asyncio.Lock()

    def today(self) -> str:
        return self._clock().astimezone(timezone.utc).strftime("%Y-%m-%d")

    def _current(self, key: str, day: str) -> int:
        entry = self._entries.get(key)
        if entry is None or entry.date != day:
            return 0
        return entry.count

    async def count(self, key: str) -> int:
        """Return the committed count for *key* today."""
        async with self._lock:
            return self._current(key, self.today())

    async def _reserve(self, key: str) -> Slot:
        async with self._lock:
            day = self.today()
            current = self._current(key, day)
            if current + self._pending.get(key, 0) >= self.limit:
                logger.info("[RATE LIMIT] %s rejected (%d/%d)", key, current, self.limit)
                raise RateLimitExceeded(self.limit, current, RETRY_AFTER_HOURS)

            self._pending[key] = self._pending.get(key, 0) + 1
            return Slot(key, day)

    async def _release(self, slot: Slot) -> None:
        async with self._lock:
            pending = self._pending.get(slot.key, 0) - 1
            if pending > 0:
                self._pending[slot.key] = pending
            else:
                self._pending.pop(slot.key, None)

            if not slot.committed:
                return

            # A slot reserved before midnight counts against the day it is stored on.
            day = self.today()
            entry = self._entries.get(slot.key)
            if entry is None or entry.date != day:
                entry = RateLimitEntry(key=slot.key, date=day, count=0)
            entry.count += 1
            self._entries[slot.key] = entry

    @asynccontextmanager
    async def slot(self, key: str) -> AsyncGenerator[Slot, None]:
        """
        Reserve a submission slot for *key*.

        Raises:
            RateLimitExceeded: If the daily limit has been reached; no state
                is changed in that case
        """
        reserved = await self._reserve(key)
        try:
            yield reserved
        finally:
            await self._release(reserved)
