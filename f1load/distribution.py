"""Spreading a rate over short steps, and random jitter of a rate."""

from __future__ import annotations

import math
import random
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from f1load.api import RateFunction

__all__ = ["DistributionType", "new_distribution", "with_jitter"]

_STEP = timedelta(milliseconds=100)


class DistributionType(str, Enum):
    """How iterations are spread within an iteration interval."""

    NONE = "none"
    REGULAR = "regular"
    RANDOM = "random"


def new_distribution(
    distribution_type: "DistributionType | str",
    iteration_duration: timedelta,
    rate_fn: RateFunction,
    random_fn: Optional[Callable[[int], int]] = None,
) -> tuple[timedelta, RateFunction]:
    """Return the step duration and rate function for the given distribution."""
    try:
        kind = DistributionType(distribution_type)
    except ValueError:
        raise ValueError(f"unable to parse distribution {distribution_type}") from None

    if random_fn is None:
        random_fn = random.randrange

    if kind is DistributionType.NONE:
        return iteration_duration, rate_fn
    if kind is DistributionType.REGULAR:
        return _regular(iteration_duration, rate_fn)
    return _random(iteration_duration, rate_fn, random_fn)


def _tick_steps(iteration_duration: timedelta) -> int:
    milliseconds = iteration_duration // timedelta(milliseconds=1)
    return milliseconds // 100


def _regular(iteration_duration: timedelta, rate_fn: RateFunction) -> tuple[timedelta, RateFunction]:
    if iteration_duration <= _STEP:
        return iteration_duration, rate_fn

    tick_steps = _tick_steps(iteration_duration)
    rate = 0
    acc_rate = 0.0
    remaining_steps = 0

    def distributed(now: datetime) -> int:
        nonlocal rate, acc_rate, remaining_steps
        if remaining_steps == 0:
            rate = rate_fn(now)
            acc_rate = 0.0
            remaining_steps = tick_steps

        acc_rate += rate / tick_steps
        acc_rate = math.ceil(acc_rate * 10_000_000) / 10_000_000
        remaining_steps -= 1

        if acc_rate < 1:
            return 0

        whole = int(acc_rate)
        acc_rate -= whole
        return whole

    return _STEP, distributed


def _random(
    iteration_duration: timedelta,
    rate_fn: RateFunction,
    random_fn: Callable[[int], int],
) -> tuple[timedelta, RateFunction]:
    if iteration_duration <= _STEP:
        return iteration_duration, rate_fn

    tick_steps = _tick_steps(iteration_duration)
    remaining_steps = 0
    remaining_rate = 0

    def distributed(now: datetime) -> int:
        nonlocal remaining_steps, remaining_rate
        if remaining_steps == 0:
            remaining_rate = rate_fn(now)
            remaining_steps = tick_steps

        if remaining_steps == 1 or remaining_rate == 0:
            current = remaining_rate
        else:
            current = min(random_fn(remaining_rate), remaining_rate)

        remaining_rate -= current
        remaining_steps -= 1

        return max(current, 0)

    return _STEP, distributed


def _round_half_away(value: float) -> float:
    truncated = math.trunc(value)
    if abs(value - truncated) >= 0.5:
        truncated += math.copysign(1, value)
    return float(truncated)


def with_jitter(rate: RateFunction, multiple: float) -> RateFunction:
    """Vary ``rate`` randomly by up to ``multiple`` percent, carrying the rounding balance."""
    if multiple == 0:
        return rate

    balance = 0.0

    def jittered(now: datetime) -> int:
        nonlocal balance
        variation = 1 + math.cos(random.random() * 2 * math.pi) * multiple / 100
        requested = float(rate(now)) + balance
        rounded = max(0.0, _round_half_away(requested * variation))
        balance = requested - rounded
        return int(rounded)

    return jittered