"""Rates that ramp between targets over a sequence of stages."""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from f1load.api import Rates
from f1load.distribution import new_distribution, with_jitter
from f1load.rate import parse_duration

__all__ = ["Stage", "RateCalculator", "parse_stages", "calculate_staged_rate"]

_INT_RE = re.compile(r"[+-]?[0-9]+")


@dataclass
class Stage:
    """A stage ramping from ``start_target`` to ``end_target`` over ``duration``."""

    start_target: int = 0
    end_target: int = 0
    duration: timedelta = timedelta(0)


class RateCalculator:
    """Interpolates the rate across consecutive stages, starting at the first call."""

    def __init__(self, stages: Iterable[Stage], start: Optional[datetime] = None) -> None:
        self._stages: list[Stage] = []
        for stage in stages:
            previous_end = self._stages[-1].end_target if self._stages else 0
            self._stages.append(dataclasses.replace(stage, start_target=previous_end))
        self._start = start
        self._current = -1

    def rate(self, now: datetime) -> int:
        """Return the rate for ``now``; 0 once every stage has elapsed."""
        if self._current < 0:
            self._current = 0
            if self._start is None:
                self._start = now

        stages = self._stages
        while self._current < len(stages) and now - self._start >= stages[self._current].duration:
            self._start += stages[self._current].duration
            self._current += 1

        if self._current >= len(stages):
            return 0

        stage = stages[self._current]
        position = (now - self._start) / stage.duration
        return stage.start_target + int(position * (stage.end_target - stage.start_target))

    def max_duration(self) -> timedelta:
        """Total duration of all stages."""
        return sum((stage.duration for stage in self._stages), timedelta(0))


def parse_stages(value: str) -> list[Stage]:
    """Parse ``"<duration>:<target>, ..."`` into stages."""
    stages = []
    for index, element in enumerate(value.split(",")):
        parts = element.strip().split(":")
        if len(parts) != 2:
            raise ValueError(f"unable to parse stage {index}: `{element}` from `{value}`")
        duration_text, target_text = parts

        try:
            duration = parse_duration(duration_text.strip())
        except ValueError:
            raise ValueError(
                f"unable to parse duration {duration_text} in stage {index}: {element}"
            ) from None

        target_text_clean = target_text.strip()
        if not _INT_RE.fullmatch(target_text_clean):
            raise ValueError(f"unable to parse target {target_text} in stage {index}: {element}")

        stages.append(Stage(end_target=int(target_text_clean), duration=duration))
    return stages


def calculate_staged_rate(
    jitter: float,
    frequency: timedelta,
    stages: str,
    distribution_type: str,
    start_time: Optional[datetime] = None,
) -> Rates:
    """Build the staged rate function described by ``stages``."""
    try:
        parsed = parse_stages(stages)
    except ValueError as exc:
        raise ValueError(f"parsing stages: {exc}") from exc

    calculator = RateCalculator(parsed, start_time)
    rate_fn = with_jitter(calculator.rate, jitter)
    try:
        iteration_duration, distributed = new_distribution(
            distribution_type, frequency, rate_fn, None
        )
    except ValueError as exc:
        raise ValueError(f"new distribution: {exc}") from exc

    return Rates(
        rate=distributed,
        iteration_duration=iteration_duration,
        duration=calculator.max_duration(),
    )