"""Rate limiter tests."""
import threading

from cronsentry.services.rate_limiter import InMemoryRateLimiter


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestInMemoryRateLimiter:
    def test_allows_up_to_limit(self):
        limiter = InMemoryRateLimiter(limit=3, window_seconds=60, clock=FakeClock())
        results = [limiter.hit("1.2.3.4") for _ in range(4)]
        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]

    def test_keys_are_independent(self):
        limiter = InMemoryRateLimiter(limit=1, window_seconds=60, clock=FakeClock())
        assert limiter.hit("a").allowed
        assert limiter.hit("b").allowed
        assert not limiter.hit("a").allowed

    def test_window_resets(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(limit=1, window_seconds=60, clock=clock)
        first = limiter.hit("a")
        assert first.reset_at == 1060.0
        assert not limiter.hit("a").allowed

        clock.now += 60
        assert limiter.hit("a").allowed

    def test_expired_windows_are_pruned(self):
        clock = FakeClock()
        limiter = InMemoryRateLimiter(limit=5, window_seconds=10, clock=clock)
        for key in ("a", "b", "c"):
            limiter.hit(key)
        assert len(limiter) == 3

        clock.now += 11
        limiter.hit("d")
        assert len(limiter) == 1

    def test_concurrent_hits_never_exceed_limit(self):
        limiter = InMemoryRateLimiter(limit=50, window_seconds=60)
        allowed = []

        def worker():
            for _ in range(20):
                if limiter.hit("shared").allowed:
                    allowed.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(allowed) == 50
