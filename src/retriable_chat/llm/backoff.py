"""Exponential backoff for rate-limited requests."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable

Clock = Callable[[], float]


@dataclass(frozen=True)
class BackoffPolicy:
    """Immutable exponential backoff settings.

    Attributes:
        initial_interval_s: Delay before the first retry.
        multiplier: Growth factor applied after each retry.
        max_interval_s: Upper bound on a single delay.
        max_elapsed_s: Retrying stops once this much time has passed since
            the first attempt. ``None`` retries forever.
        randomization_factor: Jitter as a fraction of the interval; 0 keeps
            delays deterministic.
    """

    initial_interval_s: float = 4.0
    multiplier: float = 2.0
    max_interval_s: float = 20.0
    max_elapsed_s: float | None = None
    randomization_factor: float = 0.0

    def __post_init__(self) -> None:
        if self.initial_interval_s <= 0:
            raise ValueError("initial_interval_s must be positive.")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be at least 1.0.")
        if self.max_interval_s < self.initial_interval_s:
            raise ValueError("max_interval_s must not be below initial_interval_s.")
        if self.max_elapsed_s is not None and self.max_elapsed_s < 0:
            raise ValueError("max_elapsed_s must not be negative.")
        if not 0.0 <= self.randomization_factor < 1.0:
            raise ValueError("randomization_factor must be in [0, 1).")

    def start(
        self,
        clock: Clock = time.monotonic,
        rng: Callable[[], float] = random.random,
    ) -> ExponentialBackoff:
        """Begin a retry sequence measured from ``clock()`` now."""

        return ExponentialBackoff(self, clock=clock, rng=rng)


class ExponentialBackoff:
    """Per-call backoff state; not shared between calls."""

    def __init__(
        self,
        policy: BackoffPolicy,
        *,
        clock: Clock = time.monotonic,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._policy = policy
        self._clock = clock
        self._rng = rng
        self._start = clock()
        self._current_interval = policy.initial_interval_s

    @property
    def elapsed_s(self) -> float:
        return self._clock() - self._start

    def next_backoff(self) -> float | None:
        """Return the next delay in seconds, or ``None`` when the budget is spent."""

        max_elapsed = self._policy.max_elapsed_s
        if max_elapsed is not None and self.elapsed_s > max_elapsed:
            return None
        delay = self._randomize(self._current_interval)
        self._current_interval = min(
            self._current_interval * self._policy.multiplier,
            self._policy.max_interval_s,
        )
        return delay

    def _randomize(self, interval: float) -> float:
        factor = self._policy.randomization_factor
        if factor == 0.0:
            return interval
        delta = factor * interval
        low = interval - delta
        return low + self._rng() * (2 * delta)
