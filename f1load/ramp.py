"""Ramping the rate linearly from a start rate to an end rate."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from f1load.api import Rates
from f1load.distribution import new_distribution, with_jitter
from f1load.rate import RateError, parse_rate

__all__ = ["calculate_ramp_rate"]


def calculate_ramp_rate(
    start_rate_arg: str,
    end_rate_arg: str,
    distribution_type: str,
    duration: timedelta,
    jitter: float,
) -> Rates:
    """Build a rate function moving from the start rate to the end rate over ``duration``."""
    try:
        start_rate, start_unit = parse_rate(start_rate_arg)
    except RateError as exc:
        raise RateError(f"parsing start rate: {exc}") from exc
    try:
        end_rate, end_unit = parse_rate(end_rate_arg)
    except RateError as exc:
        raise RateError(f"parsing end rate: {exc}") from exc

    if start_rate == end_rate:
        raise ValueError(
            "start-rate and end-rate should be different, for constant rate try using the constant mode"
        )
    if start_unit != end_unit:
        raise ValueError("start-rate and end-rate are not using the same unit")
    if duration < start_unit:
        raise ValueError("duration is lower than rate unit")

    start_time: Optional[datetime] = None

    def ramp(now: datetime) -> int:
        nonlocal start_time
        if start_time is None:
            start_time = now
        if start_time + duration < now:
            return 0
        position = (now - start_time) / duration
        return start_rate + int(position * (end_rate - start_rate))

    rate_fn = with_jitter(ramp, jitter)
    try:
        step, distributed = new_distribution(distribution_type, start_unit, rate_fn, None)
    except ValueError as exc:
        raise ValueError(f"new distribution: {exc}") from exc

    return Rates(rate=distributed, iteration_duration=step, duration=duration)