"""Retry policy — decide retry-with-backoff vs terminal failure.

The policy is pure: given the attempt count and the ceiling it returns a
:class:`RetryDecision`; the worker manager applies it to the job record.

    attempts < max_retries  → retry, backoff = attempts² seconds
    attempts >= max_retries → terminal failure

Backoff by attempt::

    attempts   0    1    2    3    4
    backoff    0s   1s   4s   9s   16s

A job that is never dispatched to a handler (unregistered type) keeps
``attempts == 0`` and therefore always gets a zero backoff.

The computed ``run_at`` is recorded on the job for observability. The broker
has no delayed delivery, so a retried job is re-enqueued immediately and may
run before ``run_at``.

Example:
    >>> policy = RetryPolicy()
    >>> decision = policy.decide(attempts=2, max_retries=3)
    >>> decision.retry, decision.backoff_seconds
    (True, 4.0)
    >>> policy.decide(attempts=3, max_retries=3).retry
    False
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from jobspine.jobs.models import utcnow


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of a failed attempt."""

    retry: bool
    backoff_seconds: float = 0.0
    run_at: datetime | None = None


class RetryPolicy:
    """Quadratic backoff bounded by the job's ``max_retries``."""

    def backoff_for(self, attempts: int) -> float:
        """Seconds to wait before the next attempt."""
        return float(attempts * attempts)

    def should_retry(self, attempts: int, max_retries: int) -> bool:
        return attempts < max_retries

    def decide(
        self,
        attempts: int,
        max_retries: int,
        now: datetime | None = None,
    ) -> RetryDecision:
        """Decide what happens after a failed attempt.

        Args:
            attempts: Attempts made so far (already incremented for this one)
            max_retries: Ceiling on attempts before terminal failure
            now: Reference time for ``run_at`` (defaults to UTC now)
        """
        if not self.should_retry(attempts, max_retries):
            return RetryDecision(retry=False)

        backoff = self.backoff_for(attempts)
        run_at = (now or utcnow()) + timedelta(seconds=backoff)
        return RetryDecision(retry=True, backoff_seconds=backoff, run_at=run_at)
