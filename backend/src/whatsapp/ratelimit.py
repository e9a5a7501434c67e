"""Per-session outbound rate limiting.

Two rules per session:
- sliding window: at most `limit` admitted sends per `window` seconds,
  excess requests are rejected with RateLimitExceeded;
- minimum spacing: admitted sends leave at least `min_interval` seconds
  apart. Requests inside the spacing are held, not rejected, and leave in
  arrival order.
"""

import asyncio
import time
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from src.core.exceptions import RateLimitExceeded
from src.core.logging import log

LAST_SEND_TTL = 3600.0


class RateLimiter:
    """Sliding-window + minimum-interval gate keyed by session id."""

    def __init__(
        self,
        limit: int = 50,
        window: float = 60.0,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.limit = limit
        self.window = window
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._windows: dict[str, deque[float]] = {}
        self._last_send: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _evict(self, session_id: str, now: float) -> deque[float]:
        records = self._windows.setdefault(session_id, deque())
        window_start = now - self.window
        while records and records[0] <= window_start:
            records.popleft()
        return records

    async def acquire(self, session_id: str) -> float:
        """Admit one send for `session_id`.

        Returns the clock time the send was released at. Raises
        RateLimitExceeded when the window is full.
        """
        now = self._clock()
        records = self._evict(session_id, now)

        if len(records) >= self.limit:
            retry_after = records[0] + self.window - now
            log.warning(
                f"Rate limit hit for session {session_id}: "
                f"{len(records)}/{self.limit}, retry in {retry_after:.1f}s"
            )
            raise RateLimitExceeded(
                limit=self.limit,
                window=self.window,
                retry_after=retry_after,
                current=len(records),
            )

        records.append(now)

        lock = self._locks.setdefault(session_id, asyncio.Lock())
        async with lock:
            released = self._clock()
            last = self._last_send.get(session_id)
            if last is not None:
                wait = self.min_interval - (released - last)
                if wait > 0:
                    log.debug(f"Holding send for session {session_id} {wait:.3f}s")
                    await self._sleep(wait)
                    released = self._clock()
            self._last_send[session_id] = released
        return released

    def stats(self, session_id: str) -> dict:
        now = self._clock()
        count = len(self._evict(session_id, now))
        reset_in = self.window
        records = self._windows.get(session_id)
        if records:
            reset_in = max(0.0, records[0] + self.window - now)
        return {
            "current_count": count,
            "limit": self.limit,
            "remaining": max(0, self.limit - count),
            "window_seconds": self.window,
            "reset_at": (
                datetime.now(timezone.utc) + timedelta(seconds=reset_in)
            ).isoformat(),
        }

    def clear(self, session_id: str) -> None:
        """Forget all state for a session."""
        self._windows.pop(session_id, None)
        self._last_send.pop(session_id, None)
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            self._locks.pop(session_id, None)
        log.info(f"Rate limit cleared for session {session_id}")

    def cleanup(self) -> int:
        """Drop empty windows and stale last-send stamps. Returns sessions dropped."""
        now = self._clock()
        dropped = 0

        for session_id in list(self._windows):
            if not self._evict(session_id, now):
                del self._windows[session_id]
                dropped += 1

        for session_id, stamp in list(self._last_send.items()):
            if now - stamp > LAST_SEND_TTL:
                del self._last_send[session_id]

        for session_id, lock in list(self._locks.items()):
            if (
                session_id not in self._windows
                and session_id not in self._last_send
                and not lock.locked()
            ):
                del self._locks[session_id]

        return dropped

    async def run_cleanup(self, interval: float = 300.0) -> None:
        """Periodic cleanup loop; run as a background task."""
        while True:
            await asyncio.sleep(interval)
            dropped = self.cleanup()
            if dropped:
                log.debug(f"Rate limiter cleanup dropped {dropped} idle session(s)")

    def tracked_sessions(self) -> set[str]:
        return set(self._windows) | set(self._last_send)
