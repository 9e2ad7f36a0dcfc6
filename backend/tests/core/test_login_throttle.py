"""Login Throttle - verifies lockout after repeated failures and window expiry.

Tests:
    - check() passes until max_attempts failures are recorded
    - Locked keys raise RateLimitedError with a positive retry-after
    - The window expires lockout_seconds after the first failure
    - reset() and clear() forget counters; keys are independent
"""

import pytest

from storefront.core.errors import RateLimitedError
from storefront.core.login_throttle import LoginThrottle


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def throttle(clock):
    return LoginThrottle(max_attempts=3, lockout_seconds=60, clock=clock)


def test_allows_until_limit(throttle):
    for expected in (1, 2):
        throttle.check("ip")
        assert throttle.record_failure("ip") == expected
    throttle.check("ip")


def test_locks_after_max_attempts(throttle, clock):
    for _ in range(3):
        throttle.record_failure("ip")
    clock.now += 10.5
    with pytest.raises(RateLimitedError) as exc:
        throttle.check("ip")
    assert exc.value.http_status == 429
    assert exc.value.context.retry_after_seconds == 50


def test_window_expires(throttle, clock):
    for _ in range(3):
        throttle.record_failure("ip")
    clock.now += 60
    throttle.check("ip")
    assert throttle.record_failure("ip") == 1


def test_keys_are_independent(throttle):
    for _ in range(3):
        throttle.record_failure("a")
    throttle.check("b")


def test_reset_and_clear(throttle):
    for _ in range(3):
        throttle.record_failure("a")
        throttle.record_failure("b")
    throttle.reset("a")
    throttle.check("a")
    throttle.clear()
    throttle.check("b")
