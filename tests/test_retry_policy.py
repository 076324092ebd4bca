"""
Unit tests for the pure retry decision function
"""

import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from cloudapi.coreutils.errors import (
    AuthenticationError,
    AuthorizationError,
    ContinuationExpired,
    RateLimitExceeded,
    ServerError,
    TransportError,
    ValidationError,
)
from cloudapi.coreutils.retry import (
    Fail,
    Retry,
    RetryAttempt,
    RetryPolicy,
    backoff_delay,
    decide,
)


class TestDecide(unittest.TestCase):
    def setUp(self):
        self.policy = RetryPolicy(
            max_attempts=5, base_delay=0.5, max_backoff=8.0, max_retry_after=60.0, jitter=0.0
        )

    def test_non_retryable_errors_fail_immediately(self):
        for error in (
            AuthenticationError("bad token", status_code=401),
            AuthorizationError("missing scope", status_code=403),
            ValidationError("bad filter", status_code=400),
            ContinuationExpired("stale token", status_code=400),
        ):
            decision = decide(1, error, self.policy)
            self.assertIsInstance(decision, Fail, type(error).__name__)
            self.assertIs(decision.error, error)

    def test_server_error_backs_off_exponentially(self):
        error = ServerError("boom", status_code=503)
        delays = [decide(n, error, self.policy).delay for n in range(1, 5)]
        self.assertEqual(delays, [0.5, 1.0, 2.0, 4.0])

    def test_backoff_is_capped(self):
        policy = RetryPolicy(max_attempts=20, base_delay=1.0, max_backoff=8.0, jitter=0.0)
        self.assertEqual(backoff_delay(10, policy), 8.0)

    def test_jitter_adds_bounded_fraction(self):
        policy = RetryPolicy(base_delay=1.0, max_backoff=100.0, jitter=0.5)
        self.assertEqual(backoff_delay(1, policy, rand=lambda: 0.0), 1.0)
        self.assertEqual(backoff_delay(1, policy, rand=lambda: 1.0), 1.5)

    def test_transport_error_is_retried(self):
        decision = decide(1, TransportError("reset"), self.policy)
        self.assertIsInstance(decision, Retry)

    def test_rate_limit_uses_retry_after(self):
        error = RateLimitExceeded("slow down", retry_after=2.0, status_code=429)
        self.assertEqual(decide(1, error, self.policy), Retry(2.0))

    def test_rate_limit_retry_after_is_capped(self):
        error = RateLimitExceeded("slow down", retry_after=600.0, status_code=429)
        self.assertEqual(decide(1, error, self.policy), Retry(60.0))

    def test_rate_limit_without_hint_backs_off(self):
        error = RateLimitExceeded("slow down", retry_after=None, status_code=429)
        self.assertEqual(decide(2, error, self.policy), Retry(1.0))

    def test_ceiling_stops_retries(self):
        error = RateLimitExceeded("slow down", retry_after=1.0, status_code=429)
        self.assertIsInstance(decide(4, error, self.policy), Retry)
        decision = decide(5, error, self.policy)
        self.assertIsInstance(decision, Fail)
        self.assertIs(decision.error, error)

    def test_attempt_record(self):
        state = RetryAttempt(attempt=1)
        error = ServerError("boom", status_code=500)
        decision = decide(1, error, self.policy)
        state.record(error, decision)
        self.assertEqual(state.last_error_kind, error.kind)
        self.assertEqual(state.delay, 0.5)


if __name__ == "__main__":
    unittest.main()
