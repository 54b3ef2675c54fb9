"""Fixed-window request rate limiter.

Each client key (IP address or customer email) gets a counter that resets
at a fixed boundary ``window_ms`` after the first request of the window.

Design decisions
────────────────
• The window records live in an explicit store object that is passed to the
  limiter, so the app owns its lifecycle (created in the FastAPI lifespan)
  and tests can inject a fresh one.
• **threading.Lock** around check-and-increment so concurrent requests for
  the same key never lose an increment.
• Expired windows are replaced lazily on the next ``check`` and removed
  eagerly by ``sweep``, which a daemon thread runs every
  ``sweep_interval`` seconds.  Memory stays bounded by the active keys.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 10
DEFAULT_WINDOW_MS = 60_000
DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass
class WindowRecord:
    """Request count for one key and the instant (ms) its window ends."""

    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float


class InMemoryWindowStore:
    """Process-local map of key → :class:`WindowRecord`."""

    def __init__(self) -> None:
        self._records: dict[str, WindowRecord] = {}
        self._lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator[InMemoryWindowStore]:
        """Hold the store lock across a read-modify-write sequence."""
        with self._lock:
            yield self

    def get(self, key: str) -> WindowRecord | None:
        with self._lock:
            return self._records.get(key)

    def set(self, key: str, record: WindowRecord) -> None:
        with self._lock:
            self._records[key] = record

    def delete_expired(self, now: float) -> int:
        """Drop every record whose window ended before *now*.  Returns count removed."""
        with self._lock:
            expired = [k for k, rec in self._records.items() if now > rec.reset_at]
            for key in expired:
                del self._records[key]
            return len(expired)

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class FixedWindowRateLimiter:
    """Advisory per-key limiter: at most ``max_requests`` per ``window_ms``."""

    def __init__(
        self,
        store: InMemoryWindowStore | None = None,
        *,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_ms: int = DEFAULT_WINDOW_MS,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        self._store = store if store is not None else InMemoryWindowStore()
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._clock = clock
        self._sweeper: threading.Thread | None = None
        self._stop_sweeper = threading.Event()

    @property
    def store(self) -> InMemoryWindowStore:
        return self._store

    def check(self, key: str) -> RateLimitResult:
        """Count a request for *key* and say whether it is allowed."""
        now = self._clock()
        with self._store.locked():
            record = self._store.get(key)

            if record is None or now > record.reset_at:
                record = WindowRecord(count=1, reset_at=now + self.window_ms)
                self._store.set(key, record)
                return RateLimitResult(True, self.max_requests - 1, record.reset_at)

            if record.count >= self.max_requests:
                return RateLimitResult(False, 0, record.reset_at)

            record.count += 1
            return RateLimitResult(True, self.max_requests - record.count, record.reset_at)

    def sweep(self) -> int:
        """Remove expired windows.  Returns the number removed."""
        removed = self._store.delete_expired(self._clock())
        if removed:
            logger.debug("Rate limiter: swept %d expired window(s)", removed)
        return removed

    # ── Background sweeper ───────────────────────────────────────────

    def start_sweeper(self, interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS) -> None:
        """Start a daemon thread that calls :meth:`sweep` every *interval* seconds."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop_sweeper.clear()

        def _loop():
            while not self._stop_sweeper.wait(interval):
                try:
                    self.sweep()
                except Exception:
                    logger.exception("Rate limiter sweep error")

        self._sweeper = threading.Thread(target=_loop, daemon=True, name="rate-limit-sweep")
        self._sweeper.start()
        logger.info("Rate limiter sweeper started (interval=%.0fs)", interval)

    def stop_sweeper(self) -> None:
        self._stop_sweeper.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1.0)
            self._sweeper = None
