"""Tests for exponential backoff retry policy."""

from datetime import UTC, datetime, timedelta

import pytest

from jobengine.config.settings import Settings
from jobengine.v1.jobs.retry import RetryPolicy


class TestRetryPolicy:
    def test_backoff_doubles_from_one_minute(self):
        policy = RetryPolicy()

        assert policy.backoff(0) == timedelta(minutes=1)
        assert policy.backoff(1) == timedelta(minutes=2)
        assert policy.backoff(2) == timedelta(minutes=4)
        assert policy.backoff(5) == timedelta(minutes=32)

    def test_backoff_is_unbounded_by_default(self):
        assert RetryPolicy().backoff(12) == timedelta(seconds=60 * 2**12)

    def test_cap_limits_delay(self):
        policy = RetryPolicy(max_delay_s=24 * 3600)

        assert policy.backoff(3) == timedelta(minutes=8)
        assert policy.backoff(20) == timedelta(hours=24)

    def test_negative_attempts_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy().backoff(-1)

    def test_next_run_at(self):
        now = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

        assert RetryPolicy().next_run_at(1, now) == now + timedelta(seconds=120)

    def test_should_retry(self):
        assert RetryPolicy.should_retry(1, 3) is True
        assert RetryPolicy.should_retry(2, 3) is True
        assert RetryPolicy.should_retry(3, 3) is False

    def test_from_settings(self):
        settings = Settings(job_backoff_base_s=10, job_max_backoff_s=300)

        policy = RetryPolicy.from_settings(settings)

        assert policy.backoff(1) == timedelta(seconds=20)
        assert policy.backoff(10) == timedelta(seconds=300)
