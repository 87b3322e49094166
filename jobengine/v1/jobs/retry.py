"""
Retry policy for failed job attempts.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from jobengine.config.settings import Settings


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff: ``base_delay_s * factor ** attempts``.

    With the defaults a job that failed its first attempt waits 2 minutes,
    its second 4 minutes, and so on. ``max_delay_s`` caps the delay when set;
    left unset the delay grows without bound.
    """

    base_delay_s: float = 60
    factor: float = 2
    max_delay_s: float | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            base_delay_s=settings.job_backoff_base_s,
            max_delay_s=settings.job_max_backoff_s,
        )

    def backoff(self, attempts: int) -> timedelta:
        """Delay before the next attempt, given the attempts made so far."""
        if attempts < 0:
            raise ValueError("attempts must be non-negative")

        delay = self.base_delay_s * self.factor**attempts
        if self.max_delay_s is not None:
            delay = min(delay, self.max_delay_s)
        return timedelta(seconds=delay)

    def next_run_at(self, attempts: int, now: datetime) -> datetime:
        return now + self.backoff(attempts)

    @staticmethod
    def should_retry(attempts: int, max_attempts: int) -> bool:
        return attempts < max_attempts
