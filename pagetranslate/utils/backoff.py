from __future__ import annotations

import random
from dataclasses import dataclass

from tenacity import RetryCallState
from tenacity.wait import wait_base


@dataclass(frozen=True)
class BackoffSchedule(wait_base):
    """Capped exponential backoff with additive uniform jitter.

    ``delay(n) = min(ceiling, base * factor ** n) + uniform(jitter_min, jitter_max)``

    The schedule doubles as a tenacity wait strategy: tenacity counts attempts
    from 1, so the wait after attempt ``k`` is ``delay(k - 1)``.
    """

    base_seconds: float
    factor: float
    ceiling_seconds: float
    jitter_min_seconds: float = 0.0
    jitter_max_seconds: float = 0.0

    def delay(self, attempt_index: int, rng: random.Random | None = None) -> float:
        if attempt_index < 0:
            raise ValueError(f"attempt_index must be >= 0, got {attempt_index}")
        return self.base_delay(attempt_index) + self.jitter(rng)

    def base_delay(self, attempt_index: int) -> float:
        # float pow overflows for very large indices; the ceiling applies anyway.
        try:
            raw = self.base_seconds * self.factor**attempt_index
        except OverflowError:
            return self.ceiling_seconds
        return min(self.ceiling_seconds, raw)

    def jitter(self, rng: random.Random | None = None) -> float:
        source = rng or random
        return source.uniform(self.jitter_min_seconds, self.jitter_max_seconds)

    @property
    def max_delay(self) -> float:
        return self.ceiling_seconds + self.jitter_max_seconds

    def __call__(self, retry_state: RetryCallState) -> float:
        return self.delay(max(retry_state.attempt_number - 1, 0))


PAGE_BACKOFF = BackoffSchedule(
    base_seconds=12.0,
    factor=1.5,
    ceiling_seconds=180.0,
    jitter_min_seconds=0.0,
    jitter_max_seconds=2.0,
)

TRANSPORT_BACKOFF = BackoffSchedule(
    base_seconds=4.0,
    factor=1.6,
    ceiling_seconds=60.0,
    jitter_min_seconds=0.25,
    jitter_max_seconds=0.75,
)
