"""Tests for the retry policy."""

from __future__ import annotations

from offlinesync.client.sync.retry import RetryPolicy


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_default_schedule(self) -> None:
        """Three retries at 5, 10 and 15 seconds."""
        assert RetryPolicy().schedule() == [5.0, 10.0, 15.0]

    def test_should_retry(self) -> None:
        """Retries stop at max_retries."""
        policy = RetryPolicy(max_retries=2)
        assert policy.should_retry(0)
        assert policy.should_retry(1)
        assert not policy.should_retry(2)

    def test_custom_base(self) -> None:
        """Delay grows linearly with the base."""
        assert RetryPolicy(max_retries=2, backoff_base=1.5).schedule() == [1.5, 3.0]

    def test_no_retries(self) -> None:
        """max_retries=0 disables automatic retries."""
        policy = RetryPolicy(max_retries=0)
        assert policy.schedule() == []
        assert not policy.should_retry(0)
