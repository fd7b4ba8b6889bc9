"""Tests for the quadratic retry policy."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from jobspine.jobs.retry import RetryDecision, RetryPolicy

NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


class TestRetryPolicy:
    @pytest.mark.parametrize(("attempts", "backoff"), [(0, 0.0), (1, 1.0), (2, 4.0), (3, 9.0), (4, 16.0)])
    def test_backoff_is_attempts_squared(self, attempts, backoff):
        assert RetryPolicy().backoff_for(attempts) == backoff

    def test_retry_below_ceiling(self):
        decision = RetryPolicy().decide(attempts=2, max_retries=3, now=NOW)
        assert decision == RetryDecision(retry=True, backoff_seconds=4.0, run_at=NOW + timedelta(seconds=4))

    def test_terminal_at_ceiling(self):
        decision = RetryPolicy().decide(attempts=3, max_retries=3, now=NOW)
        assert decision.retry is False
        assert decision.run_at is None

    def test_zero_max_retries_never_retries(self):
        assert RetryPolicy().decide(attempts=0, max_retries=0, now=NOW).retry is False

    def test_zero_attempts_zero_backoff(self):
        decision = RetryPolicy().decide(attempts=0, max_retries=3, now=NOW)
        assert decision.retry is True
        assert decision.run_at == NOW

    def test_default_now_is_aware(self):
        decision = RetryPolicy().decide(attempts=1, max_retries=3)
        assert decision.run_at.tzinfo is not None
