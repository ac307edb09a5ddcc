"""Worker pools that run scenario iterations concurrently."""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from f1load.scenarios import Scenario, T, new_t, run_checked

__all__ = [
    "Result",
    "nano_time",
    "ActiveScenario",
    "PoolManager",
    "TriggerPool",
    "ContinuousPool",
]

_INSTANT_DURATION = 0
_POLL_SECONDS = 0.01

Recorder = Callable[[str, "Result", int], None]


class Result(str, Enum):
    """Outcome of a setup or an iteration."""

    SUCCESS = "success"
    FAILED = "fail"
    DROPPED = "dropped"

    @classmethod
    def of(cls, failed: bool) -> "Result":
        return cls.FAILED if failed else cls.SUCCESS


def nano_time() -> int:
    """Current reading of a monotonic clock, in nanoseconds."""
    return time.monotonic_ns()


class _WaitGroup:
    """Counts outstanding work and lets callers wait for it to reach zero."""

    def __init__(self) -> None:
        self._count = 0
        self._cond = threading.Condition()

    def add(self, delta: int) -> None:
        with self._cond:
            self._count += delta
            if self._count <= 0:
                self._cond.notify_all()

    def done(self) -> None:
        self.add(-1)

    def wait(self, timeout: Optional[float] = None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._count <= 0, timeout)


@dataclass
class _IterationState:
    t: T

    def teardown(self) -> None:
        self.t.teardown()


class ActiveScenario:
    """A scenario being run: its setup state and a tally of iteration results."""

    def __init__(
        self,
        scenario: Scenario,
        logger: Optional[logging.Logger] = None,
        recorder: Optional[Recorder] = None,
    ) -> None:
        self.scenario = scenario
        self._logger = logger
        self._recorder = recorder
        self._t = new_t(scenario.name, "setup", logger)
        self._lock = threading.Lock()
        self.results: Counter[Result] = Counter()
        self.setup_result: Optional[Result] = None
        self.setup_duration = 0

    def setup(self) -> None:
        """Run the scenario's setup function once, keeping the iteration function it returns."""
        start = nano_time()

        def set_up() -> None:
            self.scenario.run_fn = self.scenario.scenario_fn(self._t)

        run_checked(self._t, set_up)
        self.setup_duration = nano_time() - start
        self.setup_result = Result.of(self._t.failed())

    def _new_iteration_state(self) -> _IterationState:
        return _IterationState(new_t(self.scenario.name, "", self._logger))

    def failed(self) -> bool:
        return self._t.failed()

    def teardown_failed(self) -> bool:
        return self._t.teardown_failed()

    def teardown(self) -> None:
        """Run the cleanups registered during setup."""
        self._t.teardown()

    def run(self, state: _IterationState) -> None:
        """Perform one iteration and record its result."""
        try:
            start = nano_time()
            run_fn = self.scenario.run_fn
            run_checked(state.t, lambda: run_fn(state.t))  # type: ignore[misc]
            failed = state.t.failed()
            self._record(Result.of(failed), nano_time() - start)
        finally:
            state.teardown()

    def record_dropped_iteration(self) -> None:
        """Record an iteration that was scheduled but never started."""
        self._record(Result.DROPPED, _INSTANT_DURATION)

    def _record(self, result: Result, duration: int) -> None:
        with self._lock:
            self.results[result] += 1
        if self._recorder is not None:
            self._recorder(self.scenario.name, result, duration)


class PoolManager:
    """Hands out iteration numbers and tracks the workers of every pool."""

    def __init__(self, max_iterations: int, active_scenario: ActiveScenario) -> None:
        self.active_scenario = active_scenario
        self.max_iterations = max_iterations
        self._iteration = 0
        self._lock = threading.Lock()
        self._running = _WaitGroup()

    def _make_iteration_states(self, num_workers: int) -> list[_IterationState]:
        return [self.active_scenario._new_iteration_state() for _ in range(num_workers)]

    def next_iteration(self) -> int:
        """Return the next iteration number; raise StopIteration past the limit."""
        with self._lock:
            self._iteration += 1
            iteration = self._iteration
        if self.max_iterations > 0 and iteration > self.max_iterations:
            raise StopIteration("max iterations reached")
        return iteration

    def max_iterations_reached(self) -> bool:
        with self._lock:
            return self.max_iterations > 0 and self._iteration > self.max_iterations

    def wait_for_completion(self, timeout: Optional[float] = None) -> bool:
        """Block until every started worker has finished; False if ``timeout`` ran out."""
        return self._running.wait(timeout)

    def new_trigger_pool(self, num_workers: int) -> "TriggerPool":
        return TriggerPool(self, num_workers)

    def new_continuous_pool(self, num_workers: int) -> "ContinuousPool":
        return ContinuousPool(self, num_workers)


def _watch(parent: threading.Event, worker_stop: threading.Event, on_stop: Callable[[], None]) -> None:
    while not worker_stop.wait(_POLL_SECONDS):
        if parent.is_set():
            worker_stop.set()
    on_stop()


class TriggerPool:
    """Workers that each run iterations as jobs are handed to the pool."""

    def __init__(self, manager: PoolManager, num_workers: int) -> None:
        self._manager = manager
        self._num_workers = num_workers
        self._states = manager._make_iteration_states(num_workers)
        self._cond = threading.Condition()
        self._jobs = 0
        self._stopped = threading.Event()
        self._worker_stop = threading.Event()

    def start(self, stop_event: threading.Event) -> threading.Event:
        """Start the workers; the returned event is set once the pool stops."""
        self._manager._running.add(self._num_workers)
        started = _WaitGroup()
        started.add(self._num_workers)
        for state in self._states:
            threading.Thread(target=self._run, args=(state, started), daemon=True).start()
        started.wait()

        threading.Thread(
            target=_watch, args=(stop_event, self._worker_stop, self._stop), daemon=True
        ).start()
        return self._worker_stop

    def trigger(self, stop_event: threading.Event, num_jobs: int) -> None:
        """Schedule ``num_jobs`` iterations, dropping any still pending."""
        if stop_event.is_set():
            return
        self._send_jobs(num_jobs)

    def _running(self) -> bool:
        return not self._stopped.is_set()

    def _stop(self) -> None:
        self._stopped.set()
        self._send_jobs(0)

    def _max_iterations_reached(self) -> None:
        with self._cond:
            self._jobs = 0
        self._worker_stop.set()

    def _send_jobs(self, num_jobs: int) -> None:
        with self._cond:
            discarded = self._jobs
            self._jobs = num_jobs
            self._cond.notify_all()
        for _ in range(discarded):
            self._manager.active_scenario.record_dropped_iteration()

    def _wait_for_new_jobs(self) -> None:
        with self._cond:
            while self._jobs <= 0 and self._running():
                self._cond.wait()

    def _take(self) -> bool:
        with self._cond:
            self._jobs -= 1
            return self._jobs >= 0

    def _run(self, state: _IterationState, started: _WaitGroup) -> None:
        try:
            started.done()
            while self._running():
                if self._jobs <= 0:
                    self._wait_for_new_jobs()
                if self._take():
                    try:
                        iteration = self._manager.next_iteration()
                    except StopIteration:
                        self._max_iterations_reached()
                        return
                    state.t.reset(str(iteration))
                    self._manager.active_scenario.run(state)
        finally:
            self._manager._running.done()


class ContinuousPool:
    """Workers that run iterations back to back until stopped."""

    def __init__(self, manager: PoolManager, num_workers: int) -> None:
        self._manager = manager
        self._num_workers = num_workers
        self._states = manager._make_iteration_states(num_workers)
        self._stopped = threading.Event()
        self._worker_stop = threading.Event()

    def start(self, stop_event: threading.Event) -> threading.Event:
        """Start the workers; the returned event is set once the pool stops."""
        started = _WaitGroup()
        started.add(self._num_workers)
        self._manager._running.add(self._num_workers)
        for state in self._states:
            threading.Thread(target=self._run, args=(state, started), daemon=True).start()

        threading.Thread(
            target=_watch, args=(stop_event, self._worker_stop, self._stopped.set), daemon=True
        ).start()
        return self._worker_stop

    def _run(self, state: _IterationState, started: _WaitGroup) -> None:
        try:
            # all workers begin together so the requested concurrency is reached
            started.done()
            started.wait()
            while not self._stopped.is_set():
                try:
                    iteration = self._manager.next_iteration()
                except StopIteration:
                    self._worker_stop.set()
                    return
                state.t.reset(str(iteration))
                self._manager.active_scenario.run(state)
        finally:
            self._manager._running.done()