"""Load following a repeating Gaussian curve."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional, Sequence

from f1load.api import Rates
from f1load.distribution import new_distribution, with_jitter
from f1load.rate import RateError, parse_rate

__all__ = ["Calculator", "new_calculator", "calculate_gaussian_rate", "calculate_volume"]

_EPOCH = datetime.min
_SECONDS_IN_A_DAY = 24 * 60 * 60


class _Gaussian:
    def __init__(self, mean: float, stddev: float) -> None:
        if not stddev > 0:
            raise ValueError(f"standard deviation must be positive, got {stddev}")
        self.mean = mean
        self.stddev = stddev

    def exponent(self, x: float) -> float:
        z = (x - self.mean) / self.stddev
        return math.exp(-0.5 * z * z)

    def pdf(self, x: float) -> float:
        return self.exponent(x) / (self.stddev * math.sqrt(2 * math.pi))

    def cdf(self, x: float) -> float:
        return 0.5 * math.erfc(-(x - self.mean) / (self.stddev * math.sqrt(2)))


def _nanoseconds(value: timedelta) -> int:
    return (value // timedelta(microseconds=1)) * 1000


def _truncate(moment: datetime, step: timedelta) -> datetime:
    """Round ``moment`` down to a multiple of ``step`` since the zero time."""
    if step <= timedelta(0):
        return moment
    offset = moment.utcoffset() or timedelta(0)
    absolute = moment.replace(tzinfo=None) - offset
    return moment - (absolute - _EPOCH) % step


class Calculator:
    """Works out how many iterations to start at each tick of a repeating window."""

    def __init__(
        self,
        peak: timedelta,
        stddev: timedelta,
        frequency: timedelta,
        weights: Optional[Sequence[float]],
        volume: float,
        repeat_window: timedelta,
    ) -> None:
        self._dist = _Gaussian(float(_nanoseconds(peak)), float(_nanoseconds(stddev)))
        self._weights = list(weights or [])
        self._frequency = frequency
        self._repeat_window = repeat_window
        self._remainder = 0.0
        self._average_weight = (
            sum(self._weights) / len(self._weights) if self._weights else 1.0
        )

        covered_region = self._dist.cdf(float(_nanoseconds(repeat_window - frequency))) - self._dist.cdf(0.0)
        self._multiplier = volume * float(_nanoseconds(frequency)) / covered_region

    def rate_at(self, now: datetime) -> int:
        """Return the whole number of iterations to start at ``now``."""
        start = _truncate(now, self._repeat_window)
        slot = float(_nanoseconds(now - start))
        rate = self._dist.pdf(slot) * self._multiplier

        if self._weights:
            start_of_weight = _truncate(now, self._repeat_window * len(self._weights))
            index = (start - start_of_weight) // self._repeat_window
            rate = rate * self._weights[index] / self._average_weight

        with_remainder = rate + self._remainder
        floor_rate = math.floor(with_remainder)
        self._remainder = with_remainder - floor_rate
        return int(floor_rate)


def new_calculator(
    peak: timedelta,
    stddev: timedelta,
    frequency: timedelta,
    weights: Optional[Sequence[float]],
    volume: float,
    repeat_window: timedelta,
) -> Calculator:
    """Create a calculator delivering ``volume`` iterations per ``repeat_window``."""
    try:
        return Calculator(peak, stddev, frequency, weights, volume, repeat_window)
    except ValueError as exc:
        raise ValueError(f"gaussian: {exc}") from exc


def calculate_gaussian_rate(
    volume: float,
    jitter: float,
    repeat: timedelta,
    frequency: timedelta,
    peak: timedelta,
    stddev: timedelta,
    weights: str,
    distribution_type: str,
) -> Rates:
    """Build the Gaussian rate function; ``weights`` is a comma separated list."""
    parsed_weights = []
    for text in weights.split(","):
        if text == "":
            continue
        try:
            parsed_weights.append(float(text))
        except ValueError as exc:
            raise ValueError(f"unable to parse weights: {exc}") from exc

    try:
        calculator = new_calculator(peak, stddev, frequency, parsed_weights, volume, repeat)
    except ValueError as exc:
        raise ValueError(f"calculator: {exc}") from exc

    rate_fn = with_jitter(calculator.rate_at, jitter)
    try:
        step, distributed = new_distribution(distribution_type, frequency, rate_fn, None)
    except ValueError as exc:
        raise ValueError(f"new distribution: {exc}") from exc

    return Rates(rate=distributed, iteration_duration=step, duration=timedelta(hours=24 * 356))


def _round_half_away(value: float) -> float:
    return math.copysign(math.floor(abs(value) + 0.5), value)


def _parse_rate_to_tps(rate_arg: str) -> float:
    try:
        rate, unit = parse_rate(rate_arg)
    except RateError as exc:
        raise RateError(f"parse to tps {rate_arg}: {exc}") from exc
    return rate / unit.total_seconds()


def calculate_volume(peak_tps: str, peak_time: timedelta, stddev: timedelta) -> float:
    """Daily volume whose Gaussian curve peaks at ``peak_tps`` iterations per second."""
    amplitude = _parse_rate_to_tps(peak_tps)
    try:
        dist = _Gaussian(peak_time.total_seconds(), stddev.total_seconds())
    except ValueError as exc:
        raise ValueError(f"distribution: {exc}") from exc

    total = 0.0
    for second in range(_SECONDS_IN_A_DAY):
        total += dist.exponent(float(second))
    return _round_half_away(amplitude * total)