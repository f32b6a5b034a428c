"""Exponential backoff for failed delivery attempts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff schedule: ``min(base * 2^(attempt-1), cap)`` milliseconds.

    Attributes:
        base_delay_ms: Delay after the first failed attempt.
        max_delay_ms: Upper bound for any single delay.
    """

    base_delay_ms: int = 5000
    max_delay_ms: int = 86_400_000

    def __post_init__(self) -> None:
        if self.base_delay_ms < 1:
            raise ValueError("base_delay_ms must be at least 1")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")

    def delay_ms(self, attempt: int) -> int:
        """Delay before the retry that follows failed attempt number ``attempt`` (1-based)."""
        if attempt < 1:
            raise ValueError("attempt is 1-based")
        # Cap the exponent so huge attempt numbers don't build giant ints
        exponent = min(attempt - 1, 62)
        return min(self.base_delay_ms * (2**exponent), self.max_delay_ms)

    def next_retry_at(self, attempt: int, now: datetime) -> datetime:
        return now + timedelta(milliseconds=self.delay_ms(attempt))
