import pytest

from marathon_route.clients import rate_limiter
from marathon_route.clients.rate_limiter import RateLimiter


class FakeClock:
    """Manually advanced monotonic clock; sleeping moves time forward."""

    def __init__(self, now=100.0):
        self.now = now
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def test_first_request_does_not_wait():
    clock = FakeClock()
    limiter = RateLimiter(0.1, clock=clock, sleep=clock.sleep)
    limiter.before_request()
    assert clock.sleeps == []


def test_delay_is_enforced_after_each_response():
    clock = FakeClock()
    limiter = RateLimiter(0.1, clock=clock, sleep=clock.sleep)

    limiter.before_request()
    limiter.after_response()
    clock.now += 0.03  # time spent decoding the tile
    limiter.before_request()

    assert clock.sleeps == [pytest.approx(0.07)]
    assert limiter.snapshot()["waits"] == 1


def test_slow_work_absorbs_the_delay():
    clock = FakeClock()
    limiter = RateLimiter(0.1, clock=clock, sleep=clock.sleep)
    limiter.after_response()
    clock.now += 0.5
    limiter.before_request()
    assert clock.sleeps == []


def test_zero_delay_never_sleeps():
    clock = FakeClock()
    limiter = RateLimiter(0.0, clock=clock, sleep=clock.sleep)
    for _ in range(5):
        limiter.before_request()
        limiter.after_response()
    assert clock.sleeps == []
    assert limiter.snapshot()["waits"] == 0


def test_from_millis():
    assert RateLimiter.from_millis(250).snapshot()["delay_seconds"] == pytest.approx(0.25)
    assert RateLimiter.from_millis(-5).snapshot()["delay_seconds"] == 0.0


def test_negative_delay_rejected():
    with pytest.raises(ValueError):
        RateLimiter(-0.1)


def test_jitter_extends_the_delay(monkeypatch):
    calls = []

    def fake_uniform(lo, hi):
        calls.append((lo, hi))
        return hi

    monkeypatch.setattr(rate_limiter.random, "uniform", fake_uniform)
    clock = FakeClock()
    limiter = RateLimiter(0.1, (0.0, 0.05), clock=clock, sleep=clock.sleep)

    limiter.after_response()
    limiter.before_request()

    assert calls == [(0.0, 0.05)]
    assert clock.sleeps == [pytest.approx(0.15)]


def test_from_millis_with_jitter():
    limiter = RateLimiter.from_millis(100, jitter_ms=40)
    assert limiter.snapshot()["jitter_seconds"] == pytest.approx(0.04)
    assert RateLimiter.from_millis(100).snapshot()["jitter_seconds"] == 0.0
