"""Triggering iterations at a constant rate."""

from __future__ import annotations

from f1load.api import Rates
from f1load.distribution import new_distribution, with_jitter
from f1load.rate import RateError, parse_rate

__all__ = ["calculate_constant_rate"]


def calculate_constant_rate(jitter: float, rate_arg: str, distribution_type: str) -> Rates:
    """Build a rate function that starts ``rate_arg`` iterations per interval."""
    try:
        rate, iteration_duration = parse_rate(rate_arg)
    except RateError as exc:
        raise RateError(f"unable to parse rate {rate_arg}: {exc}") from exc

    rate_fn = with_jitter(lambda _now: rate, jitter)
    try:
        step, distributed = new_distribution(distribution_type, iteration_duration, rate_fn, None)
    except ValueError as exc:
        raise ValueError(f"new distribution: {exc}") from exc

    return Rates(rate=distributed, iteration_duration=step)