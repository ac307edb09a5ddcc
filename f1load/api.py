"""Shared types describing triggers, their options and rate functions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

__all__ = ["RateFunction", "WorkTriggerer", "Rates", "Options", "Trigger"]

RateFunction = Callable[[datetime], int]
WorkTriggerer = Callable[..., None]


@dataclass
class Rates:
    """A rate function with the interval it is evaluated at and its total duration."""

    rate: RateFunction
    iteration_duration: timedelta
    duration: timedelta = timedelta(0)


@dataclass
class Options:
    """Run limits a trigger may impose on a test run."""

    scenario: str = ""
    max_duration: timedelta = timedelta(0)
    concurrency: int = 0
    max_iterations: int = 0
    max_failures: int = 0
    max_failures_rate: int = 0
    verbose: bool = False
    verbose_fail: bool = False
    ignore_dropped: bool = False


@dataclass
class Trigger:
    """A configured trigger: the work it starts and a rate function for dry runs."""

    trigger: WorkTriggerer
    dry_run: RateFunction
    description: str = ""
    options: Options = field(default_factory=Options)
    duration: timedelta = timedelta(0)