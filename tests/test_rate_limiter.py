"""Tests for the sliding window rate limiter."""

from gristips.utils.rate_limiter import (
    RateLimitConfig,
    RateLimiters,
    SlidingWindowRateLimiter,
    action_key,
    with_rate_limit,
)


class FakeClock:
    """Monotonic clock moved by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _limiter(clock: FakeClock, **config) -> SlidingWindowRateLimiter:
    config.setdefault("max_requests", 3)
    config.setdefault("window_seconds", 60.0)
    return SlidingWindowRateLimiter(RateLimitConfig(**config), clock=clock)


class TestSlidingWindowRateLimiter:
    """Tests for SlidingWindowRateLimiter."""

    def test_allows_up_to_quota(self):
        """Test the first max_requests calls pass and the next one does not."""
        clock = FakeClock()
        limiter = _limiter(clock)

        assert [limiter.is_allowed("user-1").allowed for _ in range(3)] == [True, True, True]

        denied = limiter.is_allowed("user-1")
        assert denied.allowed is False
        assert denied.retry_after == 60

    def test_retry_after_counts_down(self):
        """Test retry_after is the time left in the window, rounded up."""
        clock = FakeClock()
        limiter = _limiter(clock, max_requests=1)

        limiter.is_allowed("user-1")
        clock.advance(45.5)

        assert limiter.is_allowed("user-1").retry_after == 15

    def test_retry_after_override(self):
        """Test a configured retry_after replaces the time left."""
        clock = FakeClock()
        limiter = _limiter(clock, max_requests=1, retry_after_seconds=5)

        limiter.is_allowed("user-1")

        assert limiter.is_allowed("user-1").retry_after == 5

    def test_zero_retry_after_override(self):
        """Test a configured retry_after of zero is used as is."""
        clock = FakeClock()
        limiter = _limiter(clock, max_requests=1, retry_after_seconds=0)

        limiter.is_allowed("user-1")
        denied = limiter.is_allowed("user-1")

        assert denied.allowed is False
        assert denied.retry_after == 0

    def test_window_reset(self):
        """Test the quota comes back once the window has passed."""
        clock = FakeClock()
        limiter = _limiter(clock, max_requests=2)

        limiter.is_allowed("user-1")
        limiter.is_allowed("user-1")
        assert not limiter.is_allowed("user-1").allowed

        clock.advance(60)

        assert limiter.is_allowed("user-1").allowed
        assert limiter.get_status("user-1").count == 1

    def test_keys_are_independent(self):
        """Test one key exhausting its quota does not affect another."""
        clock = FakeClock()
        limiter = _limiter(clock, max_requests=1)

        limiter.is_allowed("user-1")

        assert not limiter.is_allowed("user-1").allowed
        assert limiter.is_allowed("user-2").allowed

    def test_denied_requests_are_not_counted(self):
        """Test rejected calls do not push the count past the quota."""
        clock = FakeClock()
        limiter = _limiter(clock, max_requests=2)

        for _ in range(5):
            limiter.is_allowed("user-1")

        assert limiter.get_status("user-1").count == 2

    def test_get_status(self):
        """Test status reports count, remaining and reset time without counting."""
        clock = FakeClock(start=100.0)
        limiter = _limiter(clock, max_requests=5, window_seconds=10.0)

        fresh = limiter.get_status("user-1")
        assert (fresh.count, fresh.remaining, fresh.reset_time) == (0, 5, 110.0)

        limiter.is_allowed("user-1")
        limiter.is_allowed("user-1")
        clock.advance(3)

        status = limiter.get_status("user-1")
        assert (status.count, status.remaining, status.reset_time) == (2, 3, 110.0)
        assert limiter.get_status("user-1").count == 2

    def test_reset(self):
        """Test reset forgets a key."""
        clock = FakeClock()
        limiter = _limiter(clock, max_requests=1)

        limiter.is_allowed("user-1")
        limiter.reset("user-1")

        assert limiter.is_allowed("user-1").allowed

    def test_expired_entries_are_cleaned_up(self):
        """Test stale keys are dropped on the next check."""
        clock = FakeClock()
        limiter = _limiter(clock)

        limiter.is_allowed("user-1")
        limiter.is_allowed("user-2")
        assert len(limiter) == 2

        clock.advance(61)
        limiter.is_allowed("user-3")

        assert len(limiter) == 1


class TestWithRateLimit:
    """Tests for the handler-side helper."""

    def test_check_with_action_key(self):
        """Test actions of the same user are limited separately."""
        clock = FakeClock()
        limiter = _limiter(clock, max_requests=1)
        check = with_rate_limit(limiter, action_key)

        assert check("42", "create_automation").allowed
        assert check("42", "update_automation").allowed

        result = check("42", "create_automation")
        assert result.allowed is False
        assert result.retry_after == 60
        assert result.status.remaining == 0

    def test_check_without_key_generator(self):
        """Test the user id is the key by default."""
        clock = FakeClock()
        limiter = _limiter(clock, max_requests=1)
        check = with_rate_limit(limiter)

        check("42", "one")

        assert not check("42", "two").allowed

    def test_action_key(self):
        assert action_key("42", "api_key_validation") == "42:api_key_validation"
        assert action_key("42") == "42"


class TestRateLimiters:
    """Tests for the application's limiters."""

    def test_grist_api_quota(self):
        """Test 60 Grist API calls per minute, then a 5 second retry hint."""
        limiters = RateLimiters(clock=FakeClock())

        for _ in range(60):
            assert limiters.check_grist_api("42", "create_automation").allowed

        result = limiters.check_grist_api("42", "create_automation")
        assert result.allowed is False
        assert result.retry_after == 5

    def test_grist_validation_quota(self):
        """Test 10 key validations per minute, then a 10 second retry hint."""
        limiters = RateLimiters(clock=FakeClock())

        for _ in range(10):
            assert limiters.check_grist_validation("42", "api_key_validation").allowed

        result = limiters.check_grist_validation("42", "api_key_validation")
        assert result.allowed is False
        assert result.retry_after == 10

    def test_instances_do_not_share_state(self):
        """Test two sets of limiters are independent."""
        first = RateLimiters(clock=FakeClock())
        second = RateLimiters(clock=FakeClock())

        for _ in range(10):
            first.check_grist_validation("42", "api_key_validation")

        assert second.check_grist_validation("42", "api_key_validation").allowed
