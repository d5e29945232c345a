"""
Backoff Schedule

Maps a 1-based attempt number to the delay slept before the next attempt.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

# 2**64 seconds is far past any cap; bounding the exponent avoids float overflow
_MAX_EXPONENT = 64


@dataclass(frozen=True)
class BackoffSchedule:
    """
    Capped exponential backoff with multiplicative jitter.

    delay(attempt) = min(max_delay, max(min_initial_delay, initial_delay) * base^(attempt-1)) * j
    where j is drawn uniformly from [jitter_low, jitter_high).

    Example:
        schedule = BackoffSchedule(initial_delay=1.0)
        schedule.base_delay(3)   # 4.0
        schedule.delay(3)        # somewhere in [0.0, 4.0)
    """

    initial_delay: float = 1.0
    max_delay: float = 30.0
    min_initial_delay: float = 0.1
    exponential_base: float = 2.0
    jitter_low: float = 0.0
    jitter_high: float = 1.0

    def __post_init__(self) -> None:
        if self.max_delay <= 0:
            raise ValueError(f"max_delay must be > 0, got {self.max_delay}")
        if self.exponential_base < 1:
            raise ValueError(f"exponential_base must be >= 1, got {self.exponential_base}")
        if not 0 <= self.jitter_low <= self.jitter_high <= 1:
            raise ValueError(
                f"jitter range must satisfy 0 <= low <= high <= 1, "
                f"got [{self.jitter_low}, {self.jitter_high})"
            )

    def base_delay(self, attempt: int) -> float:
        """Delay before jitter. Non-decreasing in attempt and capped at max_delay."""
        exponent = min(max(0, attempt - 1), _MAX_EXPONENT)
        initial = max(self.min_initial_delay, self.initial_delay)
        return min(self.max_delay, initial * self.exponential_base**exponent)

    def delay(self, attempt: int, rng: random.Random | None = None) -> float:
        """Jittered delay in seconds for the given attempt."""
        draw = (rng or random).random()
        factor = self.jitter_low + (self.jitter_high - self.jitter_low) * draw
        return self.base_delay(attempt) * factor
