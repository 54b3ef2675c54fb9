"""Tests for the fixed-window rate limiter."""

from __future__ import annotations

import threading
import time

from support_agent.services.rate_limiter import FixedWindowRateLimiter, InMemoryWindowStore


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _limiter(max_requests: int = 2, window_ms: int = 1000, clock: FakeClock | None = None):
    clock = clock or FakeClock()
    return FixedWindowRateLimiter(
        InMemoryWindowStore(), max_requests=max_requests, window_ms=window_ms, clock=clock,
    ), clock


class TestCheck:
    def test_first_request_opens_window(self):
        limiter, _ = _limiter(max_requests=10, window_ms=60_000)
        result = limiter.check("1.2.3.4")
        assert result.allowed is True
        assert result.remaining == 9
        assert result.reset_at == 60_000

    def test_max_two_sequence(self):
        limiter, _ = _limiter(max_requests=2)
        results = [limiter.check("k") for _ in range(3)]
        assert [r.allowed for r in results] == [True, True, False]
        assert [r.remaining for r in results] == [1, 0, 0]

    def test_denied_requests_do_not_extend_window(self):
        limiter, clock = _limiter(max_requests=1)
        first = limiter.check("k")
        clock.now = 500
        denied = limiter.check("k")
        assert denied.allowed is False
        assert denied.reset_at == first.reset_at

    def test_window_resets_only_after_reset_at(self):
        limiter, clock = _limiter(max_requests=1, window_ms=1000)
        limiter.check("k")
        clock.now = 1000
        assert limiter.check("k").allowed is False
        clock.now = 1001
        result = limiter.check("k")
        assert result.allowed is True
        assert result.remaining == 0
        assert result.reset_at == 2001

    def test_after_expiry_remaining_is_max_minus_one(self):
        limiter, clock = _limiter(max_requests=2)
        for _ in range(3):
            limiter.check("k")
        clock.now = 5000
        assert limiter.check("k").remaining == 1

    def test_keys_are_independent(self):
        limiter, _ = _limiter(max_requests=1)
        assert limiter.check("alex@example.com").allowed is True
        assert limiter.check("alex@example.com").allowed is False
        assert limiter.check("sam@example.com").allowed is True

    def test_concurrent_checks_never_over_admit(self):
        limiter = FixedWindowRateLimiter(max_requests=10, window_ms=60_000)
        allowed = []
        lock = threading.Lock()

        def worker():
            for _ in range(10):
                result = limiter.check("shared")
                with lock:
                    allowed.append(result.allowed)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert allowed.count(True) == 10
        assert len(allowed) == 80


class TestSweep:
    def test_sweep_removes_only_expired_windows(self):
        limiter, clock = _limiter(window_ms=1000)
        limiter.check("old")
        clock.now = 600
        limiter.check("fresh")
        clock.now = 1200
        assert limiter.sweep() == 1
        assert not limiter.store.has("old")
        assert limiter.store.has("fresh")

    def test_sweep_on_empty_store(self):
        limiter, _ = _limiter()
        assert limiter.sweep() == 0

    def test_background_sweeper_clears_expired_windows(self):
        limiter, clock = _limiter(window_ms=10)
        limiter.check("k")
        clock.now = 100
        limiter.start_sweeper(interval=0.01)
        try:
            deadline = time.monotonic() + 2
            while len(limiter.store) and time.monotonic() < deadline:
                time.sleep(0.01)
            assert len(limiter.store) == 0
        finally:
            limiter.stop_sweeper()
