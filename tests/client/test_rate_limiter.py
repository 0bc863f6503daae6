"""Tests for the token bucket rate limiter."""

from __future__ import annotations

import threading

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from flatsync.client.concurrency.rate_limiter import QuotaExceededError, TokenBucketRateLimiter
from tests.fakes import FakeClock

PROPERTY_SETTINGS = settings(
    max_examples=200,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)


def make_limiter(clock: FakeClock, capacity: int = 90, rate: float = 0.9) -> TokenBucketRateLimiter:
    return TokenBucketRateLimiter(capacity=capacity, refill_rate=rate, clock=clock)


class TestTokenBucketRateLimiter:
    """Tests for TokenBucketRateLimiter."""

    def test_burst_up_to_capacity(self, clock: FakeClock) -> None:
        """90 calls should pass, the 91st should fail with a retry hint."""
        limiter = make_limiter(clock)
        for _ in range(90):
            limiter.check_limit()

        with pytest.raises(QuotaExceededError) as exc_info:
            limiter.check_limit()
        assert exc_info.value.retry_after_seconds == 2
        assert "retry after 2s" in str(exc_info.value)

    def test_refills_with_time(self, clock: FakeClock) -> None:
        """After waiting retry_after seconds a request should be admitted."""
        limiter = make_limiter(clock)
        for _ in range(90):
            limiter.check_limit()
        with pytest.raises(QuotaExceededError):
            limiter.check_limit()

        clock.advance(2)
        limiter.check_limit()

    def test_failed_check_consumes_nothing(self, clock: FakeClock) -> None:
        """A rejected request should not drain the bucket further."""
        limiter = make_limiter(clock, capacity=1, rate=1.0)
        limiter.check_limit()
        for _ in range(5):
            with pytest.raises(QuotaExceededError):
                limiter.check_limit()
        clock.advance(1)
        limiter.check_limit()

    def test_never_exceeds_capacity(self, clock: FakeClock) -> None:
        """Idle time should not accumulate beyond capacity."""
        limiter = make_limiter(clock, capacity=5, rate=1.0)
        clock.advance(1000)
        assert limiter.get_token_count() == 5

    def test_get_token_count_does_not_charge(self, clock: FakeClock) -> None:
        limiter = make_limiter(clock, capacity=3, rate=1.0)
        assert limiter.get_token_count() == 3
        assert limiter.get_token_count() == 3

    def test_reset(self, clock: FakeClock) -> None:
        """reset() should restore full capacity."""
        limiter = make_limiter(clock, capacity=2, rate=0.1)
        limiter.check_limit()
        limiter.check_limit()
        limiter.reset()
        assert limiter.get_token_count() == 2

    def test_clock_going_backwards_ignored(self, clock: FakeClock) -> None:
        limiter = make_limiter(clock, capacity=1, rate=1.0)
        limiter.check_limit()
        clock.advance(-10)
        with pytest.raises(QuotaExceededError):
            limiter.check_limit()

    @pytest.mark.parametrize(("capacity", "rate"), [(0, 1.0), (1, 0.0), (1, -1.0)])
    def test_invalid_parameters(self, capacity: int, rate: float) -> None:
        with pytest.raises(ValueError):
            TokenBucketRateLimiter(capacity=capacity, refill_rate=rate)

    def test_thread_safe_admission(self, clock: FakeClock) -> None:
        """Concurrent callers should never be admitted beyond capacity."""
        limiter = make_limiter(clock, capacity=50, rate=0.001)
        admitted: list[int] = []
        lock = threading.Lock()

        def worker() -> None:
            for _ in range(20):
                try:
                    limiter.check_limit()
                except QuotaExceededError:
                    continue
                with lock:
                    admitted.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(admitted) == 50

    @PROPERTY_SETTINGS
    @given(
        st.lists(
            st.tuples(st.floats(min_value=0, max_value=5), st.integers(min_value=0, max_value=10)),
            max_size=40,
        )
    )
    def test_admissions_bounded_by_quota(self, steps: list[tuple[float, int]]) -> None:
        """Admitted requests over elapsed time T never exceed capacity + rate * T."""
        clock = FakeClock()
        limiter = make_limiter(clock, capacity=10, rate=0.5)
        admitted = 0
        elapsed = 0.0
        for wait, attempts in steps:
            clock.advance(wait)
            elapsed += wait
            for _ in range(attempts):
                try:
                    limiter.check_limit()
                except QuotaExceededError as e:
                    assert e.retry_after_seconds >= 1
                else:
                    admitted += 1
            assert admitted <= 10 + 0.5 * elapsed + 1e-9
