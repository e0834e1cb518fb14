from __future__ import annotations

import pytest

from retriable_chat.llm.backoff import BackoffPolicy


class _FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_intervals_grow_until_capped() -> None:
    backoff = BackoffPolicy(max_elapsed_s=60.0).start(_FakeClock())

    delays = [backoff.next_backoff() for _ in range(5)]

    assert delays == [4.0, 8.0, 16.0, 20.0, 20.0]


def test_stops_only_after_elapsed_exceeds_budget() -> None:
    clock = _FakeClock()
    backoff = BackoffPolicy(max_elapsed_s=60.0).start(clock)

    clock.now += 60.0
    assert backoff.next_backoff() == 4.0

    clock.now += 0.5
    assert backoff.next_backoff() is None


def test_no_budget_retries_indefinitely() -> None:
    clock = _FakeClock()
    backoff = BackoffPolicy().start(clock)

    clock.now += 10_000.0

    assert backoff.next_backoff() == 4.0


def test_randomization_spreads_around_interval() -> None:
    policy = BackoffPolicy(randomization_factor=0.5)

    low = policy.start(_FakeClock(), rng=lambda: 0.0).next_backoff()
    high = policy.start(_FakeClock(), rng=lambda: 1.0).next_backoff()

    assert low == pytest.approx(2.0)
    assert high == pytest.approx(6.0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"initial_interval_s": 0.0},
        {"multiplier": 0.5},
        {"initial_interval_s": 30.0, "max_interval_s": 20.0},
        {"max_elapsed_s": -1.0},
        {"randomization_factor": 1.0},
    ],
)
def test_invalid_policies_are_rejected(kwargs: dict[str, float]) -> None:
    with pytest.raises(ValueError):
        BackoffPolicy(**kwargs)
