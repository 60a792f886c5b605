"""Tests for the in-memory fixed-window rate limiter."""

from __future__ import annotations

import threading

from intake.services.rate_limit import FixedWindowRateLimiter


class _FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


# ── Core behaviour ───────────────────────────────────────────────────


class TestFixedWindow:
    def test_allows_up_to_limit(self):
        limiter = FixedWindowRateLimiter(limit=3, window_seconds=60, clock=_FakeClock())
        assert [limiter.check("ip").allowed for _ in range(4)] == [True, True, True, False]

    def test_retry_after_counts_down(self):
        clock = _FakeClock()
        limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=clock)
        limiter.check("ip")

        clock.now += 15.5
        decision = limiter.check("ip")
        assert decision.allowed is False
        assert decision.retry_after == 45

    def test_window_resets(self):
        clock = _FakeClock()
        limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=clock)
        limiter.check("ip")
        assert limiter.check("ip").allowed is False

        clock.now += 60
        assert limiter.check("ip").allowed is True

    def test_keys_are_independent(self):
        limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=_FakeClock())
        assert limiter.check("a").allowed is True
        assert limiter.check("b").allowed is True
        assert limiter.check("a").allowed is False

    def test_blocked_requests_do_not_extend_window(self):
        clock = _FakeClock()
        limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, clock=clock)
        limiter.check("ip")
        for _ in range(5):
            clock.now += 10
            limiter.check("ip")
        clock.now += 10
        assert limiter.check("ip").allowed is True

    def test_blocked_check_does_not_add_key(self):
        limiter = FixedWindowRateLimiter(limit=0, window_seconds=60, clock=_FakeClock())
        assert limiter.check("ip").allowed is False
        assert limiter.tracked_keys == 0


# ── Memory bound ─────────────────────────────────────────────────────


class TestKeyEviction:
    def test_oldest_keys_evicted(self):
        limiter = FixedWindowRateLimiter(limit=1, window_seconds=60, max_keys=2, clock=_FakeClock())
        limiter.check("first")
        limiter.check("second")
        limiter.check("third")
        assert limiter.tracked_keys == 2
        # "first" was evicted, so it starts a fresh window
        assert limiter.check("first").allowed is True


# ── Thread safety ────────────────────────────────────────────────────


class TestThreadSafety:
    def test_concurrent_checks_respect_limit(self):
        limiter = FixedWindowRateLimiter(limit=50, window_seconds=60)
        allowed: list[bool] = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                decision = limiter.check("shared")
                with lock:
                    allowed.append(decision.allowed)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(allowed) == 50
