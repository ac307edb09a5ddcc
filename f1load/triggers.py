"""Work triggerers: the loops that feed iterations to the worker pools."""

from __future__ import annotations

import os
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from f1load.api import Options, RateFunction
from f1load.fileconfig import RunnableStage
from f1load.ui import ErrorMessage, Output
from f1load.workers import PoolManager

__all__ = ["new_iteration_worker", "new_users_worker", "new_stages_worker"]

WorkTriggerer = Callable[[threading.Event, Optional[Output], PoolManager, Options], None]

_SAFE_DURATION_BEFORE_NEXT_STAGE = timedelta(milliseconds=20)
_POLL_SECONDS = 0.01


def new_iteration_worker(iteration_duration: timedelta, rate: RateFunction) -> WorkTriggerer:
    """Trigger ``rate(now)`` iterations at the start and on every interval tick."""
    interval = iteration_duration.total_seconds()

    def trigger(
        stop_event: threading.Event,
        output: Optional[Output],
        manager: PoolManager,
        options: Options,
    ) -> None:
        start_rate = rate(datetime.now())
        pool = manager.new_trigger_pool(options.concurrency)
        worker_stop = pool.start(stop_event)
        pool.trigger(worker_stop, start_rate)

        next_tick = time.monotonic() + interval
        while True:
            remaining = max(0.0, next_tick - time.monotonic())
            if worker_stop.wait(remaining) or stop_event.is_set():
                return
            pool.trigger(worker_stop, rate(datetime.now()))
            next_tick += interval
            now = time.monotonic()
            if next_tick < now:
                # ticks missed while busy are skipped, not replayed
                next_tick = now + interval

    return trigger


def new_users_worker(concurrency: int) -> WorkTriggerer:
    """Run iterations back to back from ``concurrency`` users until stopped."""

    def trigger(
        stop_event: threading.Event,
        output: Optional[Output],
        manager: PoolManager,
        options: Options,
    ) -> None:
        pool = manager.new_continuous_pool(concurrency)
        pool.start(stop_event)
        manager.wait_for_completion()

    return trigger


def _set_envs(params: dict[str, str], output: Optional[Output]) -> None:
    for key, value in params.items():
        try:
            os.environ[key] = value
        except (OSError, ValueError) as exc:
            if output is not None:
                output.display(
                    ErrorMessage(
                        message="unable set environment variables for given scenario", error=exc
                    )
                )


def _unset_envs(params: dict[str, str], output: Optional[Output]) -> None:
    for key in params:
        try:
            os.environ.pop(key, None)
        except (OSError, ValueError) as exc:
            if output is not None:
                output.display(
                    ErrorMessage(
                        message="unable unset environment variables for given scenario", error=exc
                    )
                )


def _run_stage(
    stop_event: threading.Event,
    output: Optional[Output],
    manager: PoolManager,
    stage: RunnableStage,
    options: Options,
) -> None:
    _set_envs(stage.params, output)
    try:
        if stage.users_concurrency == 0:
            do_work = new_iteration_worker(stage.iteration_duration, stage.rate)  # type: ignore[arg-type]
        else:
            do_work = new_users_worker(stage.users_concurrency)

        stage_stop = threading.Event()
        done = threading.Event()
        errors: list[BaseException] = []

        def work() -> None:
            try:
                do_work(stage_stop, output, manager, options)
            except BaseException as exc:  # noqa: BLE001 - re-raised in the caller
                errors.append(exc)
            finally:
                done.set()

        threading.Thread(target=work, daemon=True).start()

        # stop the stage early to avoid starting a new tick
        deadline = time.monotonic() + (stage.stage_duration - _SAFE_DURATION_BEFORE_NEXT_STAGE).total_seconds()
        while not done.wait(max(0.0, min(_POLL_SECONDS, deadline - time.monotonic()))):
            if stop_event.is_set() or time.monotonic() >= deadline:
                stage_stop.set()

        if errors:
            raise errors[0]
        if not stop_event.is_set():
            time.sleep(_SAFE_DURATION_BEFORE_NEXT_STAGE.total_seconds())
    finally:
        _unset_envs(stage.params, output)


def new_stages_worker(stages: Sequence[RunnableStage]) -> WorkTriggerer:
    """Run each stage in turn, exporting its parameters as environment variables."""

    def trigger(
        stop_event: threading.Event,
        output: Optional[Output],
        manager: PoolManager,
        options: Options,
    ) -> None:
        for stage in stages:
            if stop_event.is_set():
                return
            _run_stage(stop_event, output, manager, stage, options)

    return trigger