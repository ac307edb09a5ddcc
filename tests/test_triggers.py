import os
import threading
import time
from datetime import timedelta

from f1load.api import Options
from f1load.fileconfig import RunnableStage
from f1load.scenarios import Scenario
from f1load.triggers import new_iteration_worker, new_stages_worker, new_users_worker
from f1load.ui import new_discard_output
from f1load.workers import ActiveScenario, PoolManager, Result

ENV_KEY = "F1LOAD_TEST_STAGE_PARAM"


def make_manager(run_fn, max_iterations=0):
    active = ActiveScenario(Scenario(name="scn", scenario_fn=lambda t: run_fn))
    active.setup()
    return PoolManager(max_iterations, active), active


def run_in_thread(fn, *args):
    thread = threading.Thread(target=fn, args=args, daemon=True)
    thread.start()
    return thread


def test_iteration_worker_triggers_until_stopped():
    runs = []
    lock = threading.Lock()

    def run_fn(t):
        with lock:
            runs.append(t.iteration)

    manager, active = make_manager(run_fn)
    worker = new_iteration_worker(timedelta(milliseconds=50), lambda now: 3)
    stop = threading.Event()
    thread = run_in_thread(worker, stop, new_discard_output(), manager, Options(concurrency=2))
    time.sleep(0.3)
    stop.set()
    thread.join(5)
    assert not thread.is_alive()
    assert manager.wait_for_completion(timeout=5) is True
    assert len(runs) >= 3
    assert active.results[Result.SUCCESS] == len(runs)


def test_iteration_worker_stops_at_max_iterations():
    manager, active = make_manager(lambda t: None, max_iterations=4)
    worker = new_iteration_worker(timedelta(milliseconds=20), lambda now: 2)
    stop = threading.Event()
    thread = run_in_thread(worker, stop, None, manager, Options(concurrency=1))
    thread.join(5)
    assert not thread.is_alive()
    assert active.results[Result.SUCCESS] == 4


def test_users_worker_runs_until_iterations_exhausted():
    manager, active = make_manager(lambda t: None, max_iterations=7)
    worker = new_users_worker(2)
    thread = run_in_thread(worker, threading.Event(), None, manager, Options())
    thread.join(5)
    assert not thread.is_alive()
    assert active.results[Result.SUCCESS] == 7


def test_stages_worker_sets_params_per_stage():
    seen = []
    lock = threading.Lock()

    def run_fn(t):
        with lock:
            seen.append(os.environ.get(ENV_KEY))
        time.sleep(0.002)

    manager, active = make_manager(run_fn)
    stages = [
        RunnableStage(
            stage_duration=timedelta(milliseconds=120),
            params={ENV_KEY: "one"},
            users_concurrency=1,
        ),
        RunnableStage(
            stage_duration=timedelta(milliseconds=120),
            params={ENV_KEY: "two"},
            rate=lambda now: 2,
            iteration_duration=timedelta(milliseconds=30),
        ),
    ]
    worker = new_stages_worker(stages)
    stop = threading.Event()
    worker(stop, new_discard_output(), manager, Options(concurrency=2))
    stop.set()
    assert manager.wait_for_completion(timeout=5) is True

    assert set(seen) == {"one", "two"}
    assert seen[0] == "one"
    assert ENV_KEY not in os.environ


def test_stages_worker_does_nothing_when_already_stopped():
    runs = []
    manager, active = make_manager(lambda t: runs.append(1))
    stages = [
        RunnableStage(
            stage_duration=timedelta(milliseconds=100),
            params={ENV_KEY: "never"},
            users_concurrency=1,
        )
    ]
    stop = threading.Event()
    stop.set()
    new_stages_worker(stages)(stop, None, manager, Options())
    assert runs == []
    assert ENV_KEY not in os.environ
    assert sum(active.results.values()) == 0