"""Scenario registration and the per-iteration test state handed to scenarios."""

from __future__ import annotations

import logging
import sys
import traceback
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TextIO, TypeVar

__all__ = [
    "FailNow",
    "T",
    "ScenarioFn",
    "RunFn",
    "new_t",
    "run_checked",
    "Scenario",
    "ScenarioParameter",
    "ScenarioOption",
    "Scenarios",
    "description",
    "parameter",
    "list_scenarios",
    "combine_scenarios",
]

_R = TypeVar("_R")


class FailNow(BaseException):
    """Raised by :meth:`T.fail_now` to stop the current scenario function."""


class T:
    """State of one scenario setup or iteration: failures, cleanups and logging."""

    def __init__(
        self,
        scenario: str,
        iteration: str = "",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.scenario = scenario
        self.iteration = iteration
        self.logger = logger if logger is not None else logging.getLogger("f1load.scenario")
        self._teardown_stack: list[Callable[[], Any]] = []
        self._failed = False
        self._teardown_failed = False
        self._tearing_down = False

    def reset(self, iteration: str) -> None:
        """Prepare for a new iteration, forgetting failures and cleanups."""
        self.iteration = iteration
        self._failed = False
        self._teardown_failed = False
        self._tearing_down = False
        self._teardown_stack = []

    def name(self) -> str:
        """Name of the running scenario."""
        return self.scenario

    def fail(self) -> None:
        """Mark as failed and carry on."""
        if self._tearing_down:
            self._teardown_failed = True
        else:
            self._failed = True

    def fail_now(self) -> None:
        """Mark as failed and stop the current function."""
        self.fail()
        raise FailNow()

    def errorf(self, fmt: str, *args: Any) -> None:
        """Log a formatted error, then fail."""
        self.logger.error(fmt % args if args else fmt)
        self.fail()

    def error(self, err: BaseException) -> None:
        """Log an error, then fail."""
        self.logger.error("iteration failed", extra={"iteration": self.iteration, "error": str(err)})
        self.fail()

    def fatalf(self, fmt: str, *args: Any) -> None:
        """Log a formatted error, then stop."""
        self.logger.error(fmt % args if args else fmt)
        self.fail_now()

    def fatal(self, err: BaseException) -> None:
        """Log an error, then stop."""
        self.logger.error("iteration failed", extra={"iteration": self.iteration, "error": str(err)})
        self.fail_now()

    def log(self, *args: Any) -> None:
        """Log the arguments at info level."""
        self.logger.info(" ".join(str(arg) for arg in args))

    def logf(self, fmt: str, *args: Any) -> None:
        """Log a formatted message at info level."""
        self.logger.info(fmt % args if args else fmt)

    def failed(self) -> bool:
        return self._failed

    def teardown_failed(self) -> bool:
        return self._teardown_failed

    def cleanup(self, f: Callable[[], Any]) -> None:
        """Register ``f`` to run at teardown; cleanups run last added, first called."""
        self._teardown_stack.append(f)

    def teardown(self) -> None:
        """Run the registered cleanups in reverse order, recording any failure."""
        self._tearing_down = True
        for cleanup_fn in reversed(self._teardown_stack):
            run_checked(self, cleanup_fn)


ScenarioFn = Callable[[T], "RunFn"]
RunFn = Callable[[T], None]


def new_t(scenario_name: str, iteration: str = "", logger: Optional[logging.Logger] = None) -> T:
    """Create test state for ``scenario_name``."""
    return T(scenario_name, iteration, logger)


def run_checked(t: T, fn: Callable[[], _R]) -> Optional[_R]:
    """Call ``fn``; a :class:`FailNow` ends it quietly, any other exception fails ``t``."""
    try:
        return fn()
    except FailNow:
        return None
    except Exception as exc:  # noqa: BLE001 - scenario code may raise anything
        t.logger.error(
            "recovered panic in scenario",
            extra={
                "stack_trace": traceback.format_exc(),
                "iteration": t.iteration,
                "error": str(exc),
            },
        )
        t.fail()
        return None


@dataclass
class ScenarioParameter:
    """A documented parameter of a scenario."""

    name: str
    description: str = ""
    default: str = ""


@dataclass
class Scenario:
    """A named test scenario and, once set up, its iteration function."""

    name: str
    scenario_fn: ScenarioFn
    description: str = ""
    parameters: list[ScenarioParameter] = field(default_factory=list)
    run_fn: Optional[RunFn] = None


ScenarioOption = Callable[[Scenario], None]


def description(text: str) -> ScenarioOption:
    """Option setting a scenario's description."""

    def apply(scenario: Scenario) -> None:
        scenario.description = text

    return apply


def parameter(param: ScenarioParameter) -> ScenarioOption:
    """Option adding a parameter to a scenario."""

    def apply(scenario: Scenario) -> None:
        scenario.parameters.append(param)

    return apply


class Scenarios:
    """Registered scenarios, keyed by name."""

    def __init__(self) -> None:
        self._scenarios: dict[str, Scenario] = {}

    def add(self, scenario: Scenario) -> "Scenarios":
        """Register ``scenario``, replacing any of the same name."""
        self._scenarios[scenario.name] = scenario
        return self

    def get_scenario(self, name: str) -> Optional[Scenario]:
        return self._scenarios.get(name)

    def get_scenario_names(self) -> list[str]:
        """Names of all scenarios, sorted."""
        return sorted(self._scenarios)


def list_scenarios(scenarios: Scenarios, out: Optional[TextIO] = None) -> None:
    """Write the sorted scenario names, one per line."""
    stream = out if out is not None else sys.stdout
    for name in scenarios.get_scenario_names():
        print(name, file=stream)


def combine_scenarios(*args: ScenarioFn) -> ScenarioFn:
    """A scenario that sets up each given scenario in turn and runs them all every iteration."""

    def combined(t: T) -> RunFn:
        runs = [scenario_fn(t) for scenario_fn in args]

        def run(iteration_t: T) -> None:
            for run_fn in runs:
                run_fn(iteration_t)

        return run

    return combined