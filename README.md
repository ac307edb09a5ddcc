# f1load

`f1load` is a library for generating load against a system under test. You
write a scenario that says what a single iteration does, choose how fast
iterations should start, and `f1load` runs them on a pool of worker threads.
It keeps a count of the iterations that succeeded, failed or were dropped.

## Concepts

* **Scenario**: a setup function. It takes a `T` and returns the function
  that runs on every iteration. `T` (in `f1load.scenarios`) records failures
  through `fail`, `fail_now`, `error`, `errorf`, `fatal` and `fatalf`, logs
  through `log` and `logf`, and holds cleanup callbacks registered with
  `cleanup`. `teardown` runs the cleanups last-in, first-out. An exception
  raised by scenario code is logged and marks the `T` as failed. The
  `FailNow` exception that `fail_now` raises ends the current function
  quietly.
* **Rate**: a string of the form `<count>/<duration>`, for example `10/s`,
  `100/10s` or `1/ms`. A bare count such as `10` means per second.
* **Trigger modes** decide how many iterations start on each tick:
  * constant: a fixed rate (`f1load.constant.calculate_constant_rate`)
  * ramp: a linear change from a start rate to an end rate
    (`f1load.ramp.calculate_ramp_rate`)
  * staged: a list of `<duration>:<target>` stages, with interpolation
    between the targets (`f1load.staged.calculate_staged_rate`,
    `f1load.staged.parse_stages`, `f1load.staged.RateCalculator`)
  * gaussian: a volume spread over a repeating window along a normal curve,
    with optional weights for each repetition
    (`f1load.gaussian.calculate_gaussian_rate`). `calculate_volume` turns a
    peak rate into the daily volume that reaches that peak.
  * users: a fixed number of workers that each start a new iteration as soon
    as the last one finishes (`f1load.triggers.new_users_worker`)
  * file: a YAML file that chains any of the modes above
    (`f1load.fileconfig.parse_config_file`, `f1load.triggers.new_stages_worker`)
* **Distribution** (`none`, `regular` or `random`, see
  `f1load.distribution.DistributionType`): `regular` and `random` split each
  tick's iterations over 100 ms steps, so they do not all start at once.
  `none` leaves the tick as it is.
* **Jitter** (`f1load.distribution.with_jitter`) varies the rate at random by
  up to the given percentage. The amount lost to rounding is carried into the
  next tick.

## Parsing rates and durations

```python
from f1load.rate import parse_rate, parse_duration, format_duration, RateError

count, unit = parse_rate("100/10s")   # (100, timedelta(seconds=10))
parse_duration("1h30m")               # timedelta(hours=1, minutes=30)
format_duration(parse_duration("90s"))  # "1m30s"

try:
    parse_rate("-10/s")
except RateError as exc:
    print(exc)                        # rate -10/s can't be negative
```

## Computing a rate function

Each `calculate_*` function returns an `f1load.api.Rates`. It holds
`iteration_duration` (the tick length), `rate` (a function that takes a
`datetime` and returns the number of iterations to start at that moment), and
`duration` for the modes that have one. Invalid input raises `ValueError`,
or `RateError`, which is a subclass of it.

```python
from datetime import datetime
from f1load.constant import calculate_constant_rate

rates = calculate_constant_rate(0.0, "6/s", "none")
rates.rate(datetime.now())   # 6
```

## Running iterations

`f1load.workers.ActiveScenario` wraps a scenario. Its `setup` method runs the
setup function once. `PoolManager` hands out iteration numbers and stops
once `max_iterations` is passed; `0` means no limit. The triggers in
`f1load.triggers` are called with a `threading.Event` that stops them, an
optional `Output`, the manager and an `f1load.api.Options`:

```python
import threading
from f1load.api import Options
from f1load.constant import calculate_constant_rate
from f1load.scenarios import Scenario
from f1load.triggers import new_iteration_worker
from f1load.workers import ActiveScenario, PoolManager

def setup(t):
    def run(t):
        t.log("iteration", t.iteration)
    return run

active = ActiveScenario(Scenario("demo", setup))
active.setup()
manager = PoolManager(max_iterations=0, active_scenario=active)

rates = calculate_constant_rate(0.0, "5/s", "regular")
stop = threading.Event()
threading.Timer(2.0, stop.set).start()

new_iteration_worker(rates.iteration_duration, rates.rate)(
    stop, None, manager, Options(concurrency=4)
)
manager.wait_for_completion()
active.teardown()
print(active.results)   # Counter of Result.SUCCESS / FAILED / DROPPED
```

When a tick schedules new iterations, any iterations from the previous tick
that have not started yet are recorded as dropped. `ActiveScenario` also
takes an optional `recorder` callable. It is called with the scenario name,
the `Result` and the duration in nanoseconds of every iteration.

## Config files

```yaml
scenario: checkout
limits:
  max-duration: 1m
  concurrency: 50
  max-iterations: 1000
  ignore-dropped: true
default:
  distribution: regular
  jitter: 0
stages:
- duration: 30s
  mode: ramp
  start-rate: 0/s
  end-rate: 20/s
- duration: 1m
  mode: constant
  rate: 20/s
  parameters:
    REGION: eu
- duration: 30s
  mode: users
  concurrency: 10
```

The fields `scenario`, `max-duration`, `concurrency`, `max-iterations` and
`ignore-dropped` are required, and so is at least one stage. `max-failures`
and `max-failures-rate` default to 0. A field that a stage leaves out is
taken from `default`. A `users` stage with no concurrency of its own uses
`limits.concurrency`. When `schedule.stage-start` is given, stages that had
already finished by `now` are skipped. Missing or invalid fields raise
`ConfigError`, with a message such as `missing rate at stage 0`.

```python
from datetime import datetime, timezone
from f1load.fileconfig import read_config_file, parse_config_file, new_dry_run

plan = parse_config_file(read_config_file("load.yaml"), datetime.now(timezone.utc))
print(plan.scenario, len(plan.stages), plan.stages_total_duration)
```

`new_stages_worker(plan.stages)` runs the stages one after another. While a
stage runs, its `parameters` are set as environment variables, and they are
removed when it ends. `new_dry_run(plan.stages)` returns a rate function that
moves through the stages as time passes. For a `users` stage it returns 1.

## Scenarios

```python
from f1load.scenarios import Scenario, Scenarios, combine_scenarios, description, list_scenarios

def setup_login(t):
    t.cleanup(lambda: print("logged out"))
    def run(t):
        t.log("logging in")
    return run

def setup_browse(t):
    def run(t):
        t.log("browsing")
    return run

journey = Scenario("journey", combine_scenarios(setup_login, setup_browse))
description("log in, then browse")(journey)

registry = Scenarios().add(journey)
list_scenarios(registry)   # prints "journey"
```

`combine_scenarios` runs each setup function in turn. On every iteration it
runs each of the resulting iteration functions in turn.
`Scenarios.get_scenario_names()` returns the registered names in sorted
order.

## Output

`f1load.ui.Output.display` prints a message (`ErrorMessage`,
`WarningMessage`, `InfoMessage` or `InteractiveMessage`) through a `Printer`
when printing is allowed and the session is interactive. Otherwise it sends
the message to a `logging.Logger`, and an `InteractiveMessage` is dropped.
`new_default_output()` uses the standard streams and counts the session as
interactive when stdin is a terminal. `new_discard_output()` drops
everything.

## What it does not do

* There is no command-line program. Scenarios and triggers are driven from
  Python code, as in the examples above.
* Apart from `max_iterations`, nothing enforces the limits carried by
  `Options` or a config file (`max_duration`, `max_failures`,
  `max_failures_rate`, `ignore_dropped`). Stop a run by setting the stop
  event.
* Results are kept only as in-memory counts and passed to an optional
  recorder callback. There is no metrics export, no chart output and no
  profiling.