"""Retry policy for failed sync passes.

A pass that leaves failed operations in the queue is retried automatically
up to max_retries times. The n-th retry waits backoff_base * n seconds
(5s, 10s, 15s with the defaults). Once retries are exhausted the engine
waits for an external trigger (periodic tick, reconnect, enqueue, or an
explicit sync).
"""

from __future__ import annotations

from dataclasses import dataclass

# Default retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 5.0  # seconds


@dataclass(frozen=True)
class RetryPolicy:
    """Linear backoff between consecutive failed passes.

    Attributes:
        max_retries: Maximum number of automatic retries.
        backoff_base: Delay multiplier in seconds.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_base: float = DEFAULT_BACKOFF_BASE

    def should_retry(self, retry_count: int) -> bool:
        """Check if another automatic retry is allowed."""
        return retry_count < self.max_retries

    def delay_for(self, retry_count: int) -> float:
        """Delay before retry number retry_count (1-based)."""
        return self.backoff_base * retry_count

    def schedule(self) -> list[float]:
        """All retry delays, in order."""
        return [self.delay_for(n) for n in range(1, self.max_retries + 1)]
