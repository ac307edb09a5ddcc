from datetime import datetime, timedelta, timezone

import pytest

from f1load.fileconfig import (
    ConfigError,
    RunnableStage,
    new_dry_run,
    parse_config_file,
    read_config_file,
)

NOW = datetime(2020, 12, 10, 10, 0, 0, tzinfo=timezone.utc)

LIMITS = """
limits:
  max-duration: 1m
  concurrency: 50
  max-iterations: 100
  ignore-dropped: true
"""

GAUSSIAN_RATES = [
    0, 0, 1, 2, 3, 6, 8, 10, 13, 13, 13, 10, 9, 5, 3, 2, 1, 0, 1, 0,
    0, 0, 1, 2, 3, 6, 8, 10, 13, 13, 13, 11, 8, 5, 3, 2, 1, 0, 1, 0,
    0, 0, 1, 2, 3, 6, 8, 10, 13, 13, 13, 11, 8, 5, 3, 2, 1, 1, 0, 0,
]

SINGLE_STAGE_CASES = [
    (
        "constant",
        "scenario: template" + LIMITS + """stages:
- duration: 5s
  mode: constant
  rate: 6/s
  jitter: 0
  distribution: none
  parameters:
    FOO: bar
""",
        timedelta(seconds=5), timedelta(seconds=1), [6, 6, 6, 6, 6, 6], 0,
    ),
    (
        "ramp",
        "scenario: template" + LIMITS + """stages:
- duration: 10s
  mode: ramp
  start-rate: 0/s
  end-rate: 10/s
  jitter: 0
  distribution: none
  parameters:
    FOO: bar
""",
        timedelta(seconds=10), timedelta(seconds=1), list(range(10)), 0,
    ),
    (
        "staged",
        "scenario: template" + LIMITS + """stages:
- duration: 10s
  mode: staged
  stages: 0s:0,10s:10
  iteration-frequency: 1s
  jitter: 0
  distribution: none
  parameters:
    FOO: bar
""",
        timedelta(seconds=10), timedelta(seconds=1), list(range(10)), 0,
    ),
    (
        "gaussian",
        "scenario: template" + LIMITS + """stages:
- duration: 10s
  mode: gaussian
  volume: 100
  repeat: 20s
  iteration-frequency: 1s
  peak: 10s
  weights: "1.0,1.0"
  standard-deviation: 3s
  jitter: 0
  distribution: none
  parameters:
    FOO: bar
""",
        timedelta(seconds=10), timedelta(seconds=1), GAUSSIAN_RATES, 0,
    ),
    (
        "users",
        "scenario: template" + LIMITS + """stages:
- duration: 10s
  mode: users
  concurrency: 100
  parameters:
    FOO: bar
""",
        timedelta(seconds=10), timedelta(0), [], 100,
    ),
    (
        "constant defaults",
        """scenario: template
default:
  mode: constant
  rate: 6/s
  jitter: 0
  distribution: none
  parameters:
    FOO: bar
""" + LIMITS.lstrip("\n") + """stages:
- duration: 5s
""",
        timedelta(seconds=5), timedelta(seconds=1), [6, 6, 6, 6, 6, 6], 0,
    ),
    (
        "ramp defaults",
        """scenario: template
default:
  mode: ramp
  start-rate: 0
  end-rate: 10
  jitter: 0
  distribution: none
  parameters:
    FOO: bar
""" + LIMITS.lstrip("\n") + """stages:
- duration: 10s
""",
        timedelta(seconds=10), timedelta(seconds=1), list(range(10)), 0,
    ),
    (
        "staged defaults",
        """scenario: template
default:
  mode: staged
  stages: 0s:0,10s:10
  iteration-frequency: 1s
  jitter: 0
  distribution: none
  parameters:
    FOO: bar
""" + LIMITS.lstrip("\n") + """stages:
- duration: 10s
""",
        timedelta(seconds=10), timedelta(seconds=1), list(range(10)), 0,
    ),
    (
        "gaussian defaults",
        """scenario: template
default:
  mode: gaussian
  volume: 100
  repeat: 20s
  iteration-frequency: 1s
  peak: 10s
  weights: "1.0,1.0"
  standard-deviation: 3s
  jitter: 0
  distribution: none
  parameters:
    FOO: bar
""" + LIMITS.lstrip("\n") + """stages:
- duration: 10s
""",
        timedelta(seconds=10), timedelta(seconds=1), GAUSSIAN_RATES, 0,
    ),
    (
        "users defaults",
        """scenario: template
default:
  duration: 10s
  mode: users
  parameters:
    FOO: bar
""" + LIMITS.lstrip("\n") + """stages:
- mode: users
""",
        timedelta(seconds=10), timedelta(0), [], 50,
    ),
    (
        "skip completed stages",
        "scenario: template" + LIMITS + """schedule:
  stage-start: "2020-12-10T09:00:00+00:00"
stages:
- duration: 1h
  mode: constant
  rate: 1/s
  jitter: 0
  distribution: none
  parameters:
    FOO: bar
- duration: 5s
  mode: constant
  rate: 2/s
  jitter: 0
  distribution: none
  parameters:
    FOO: bar
""",
        timedelta(seconds=5), timedelta(seconds=1), [2, 2, 2, 2, 2], 0,
    ),
]


@pytest.mark.parametrize(
    "content, stage_duration, iteration_duration, expected_rates, users",
    [case[1:] for case in SINGLE_STAGE_CASES],
    ids=[case[0] for case in SINGLE_STAGE_CASES],
)
def test_single_stages(content, stage_duration, iteration_duration, expected_rates, users):
    result = parse_config_file(content.encode(), NOW)

    assert len(result.stages) == 1
    assert result.scenario == "template"
    assert result.max_duration == timedelta(minutes=1)
    assert result.concurrency == 50
    assert result.max_iterations == 100
    assert result.ignore_dropped is True
    stage = result.stages[0]
    assert stage.stage_duration == stage_duration
    assert stage.iteration_duration == iteration_duration
    assert stage.params == {"FOO": "bar"}
    assert stage.users_concurrency == users

    if expected_rates:
        now = NOW
        rates = []
        for _ in expected_rates:
            now += iteration_duration
            rates.append(stage.rate(now))
        assert rates == expected_rates


def test_includes_max_failures():
    content = """scenario: template
limits:
  max-duration: 1m
  concurrency: 50
  max-iterations: 100
  max-failures: 10
  max-failures-rate: 5
  ignore-dropped: true
stages:
- duration: 5s
  mode: constant
  rate: 6/s
  jitter: 0
  distribution: none
  parameters:
    FOO: bar
"""
    result = parse_config_file(content, NOW)
    assert result.max_failures == 10
    assert result.max_failures_rate == 5
    assert result.stages_total_duration == timedelta(seconds=5)


def test_max_failures_default_to_zero():
    content = "scenario: template" + LIMITS + """stages:
- duration: 5s
  mode: users
  concurrency: 3
"""
    result = parse_config_file(content, NOW)
    assert (result.max_failures, result.max_failures_rate) == (0, 0)
    assert result.stages[0].params == {}


def test_total_duration_counts_skipped_stages():
    content = "scenario: template" + LIMITS + """schedule:
  stage-start: "2020-12-10T09:00:00+00:00"
stages:
- duration: 1h
  mode: users
  concurrency: 1
- duration: 5s
  mode: users
  concurrency: 2
"""
    result = parse_config_file(content, NOW)
    assert result.stages_total_duration == timedelta(hours=1, seconds=5)
    assert [s.users_concurrency for s in result.stages] == [2]


ERROR_CASES = [
    (LIMITS, "missing scenario"),
    ("""
scenario: template
limits:
  concurrency: 50
  max-iterations: 100
  ignore-dropped: true
""", "missing max-duration"),
    ("""
scenario: template
limits:
  max-duration: 1m
  max-iterations: 100
  ignore-dropped: true
""", "missing concurrency"),
    ("""
scenario: template
limits:
  max-duration: 1m
  concurrency: 50
  ignore-dropped: true
""", "missing max-iterations"),
    ("""
scenario: template
limits:
  max-duration: 1m
  concurrency: 50
  max-iterations: 100
""", "missing ignore-dropped"),
    ("scenario: template" + LIMITS, "missing stages"),
    ("scenario: template" + LIMITS + """stages:
- duration: 1h
  mode: constant
""", "missing rate at stage 0"),
    ("scenario: template" + LIMITS + """stages:
- duration: 1h
  mode: constant
  rate: 6/s
""", "missing distribution at stage 0"),
    ("scenario: template" + LIMITS + """stages:
- duration: 10s
  mode: ramp
""", "missing start-rate at stage 0"),
    ("scenario: template" + LIMITS + """stages:
- duration: 10s
  mode: ramp
  start-rate: 0
""", "missing end-rate at stage 0"),
    ("scenario: template" + LIMITS + """stages:
- duration: 10s
  mode: ramp
  start-rate: 0
  end-rate: 10
""", "missing distribution at stage 0"),
    ("scenario: template" + LIMITS + """stages:
- duration: 10s
  mode: staged
  iteration-frequency: 1s
""", "missing stages at stage 0"),
    ("scenario: template" + LIMITS + """stages:
- duration: 10s
  mode: staged
  stages: 0s:0,10s:10
""", "missing iteration-frequency at stage 0"),
    ("scenario: template" + LIMITS + """stages:
- duration: 10s
  mode: gaussian
""", "missing volume at stage 0"),
    ("scenario: template" + LIMITS + """stages:
- duration: 10s
  mode: gaussian
  volume: 100
""", "missing repeat at stage 0"),
    ("scenario: template" + LIMITS + """stages:
- duration: 10s
  mode: gaussian
  volume: 100
  repeat: 20s
""", "missing iteration-frequency at stage 0"),
    ("scenario: template" + LIMITS + """stages:
- duration: 10s
""", "missing stage mode at stage 0"),
    ("scenario: template" + LIMITS + """stages:
- mode: users
""", "missing duration at stage 0"),
    ("scenario: template" + LIMITS + """stages:
- duration: 10s
  mode: bogus
""", "invalid stage mode at stage 0"),
    ("\ninvalid file content\n", "line 2: cannot unmarshal"),
    ("scenario: template" + LIMITS + """stages:
- duration: 10
  mode: users
""", "parsing config file as yaml"),
]


@pytest.mark.parametrize("content, message", ERROR_CASES, ids=[c[1] for c in ERROR_CASES])
def test_file_errors(content, message):
    with pytest.raises(ConfigError, match=message):
        parse_config_file(content.encode(), NOW)


def test_rate_calculation_error_is_reported():
    content = "scenario: template" + LIMITS + """stages:
- duration: 10s
  mode: ramp
  start-rate: 5/s
  end-rate: 5/s
  distribution: none
"""
    with pytest.raises(ConfigError, match="calculating ramp rate"):
        parse_config_file(content, NOW)


def test_read_config_file_round_trip(tmp_path):
    content = "scenario: from-disk" + LIMITS + """stages:
- duration: 5s
  mode: users
  concurrency: 4
"""
    path = tmp_path / "profile.yaml"
    path.write_text(content)

    data = read_config_file(path)
    assert data == content.encode()
    result = parse_config_file(data, NOW)
    assert result.scenario == "from-disk"
    assert result.stages[0].users_concurrency == 4


def test_read_config_file_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_config_file(tmp_path / "absent.yaml")


def test_dry_run_steps_through_stages():
    stages = [
        RunnableStage(
            stage_duration=timedelta(seconds=2),
            rate=lambda _now: 5,
            iteration_duration=timedelta(seconds=1),
        ),
        RunnableStage(stage_duration=timedelta(seconds=2), users_concurrency=3),
    ]
    dry_run = new_dry_run(stages)

    rates = [dry_run(NOW + timedelta(seconds=s)) for s in range(7)]
    assert rates == [5, 5, 5, 5, 1, 1, 0]


def test_dry_run_with_no_stages_is_zero():
    dry_run = new_dry_run([])
    assert dry_run(NOW) == 0
    assert dry_run(NOW + timedelta(hours=1)) == 0


def test_dry_run_over_parsed_constant_stage():
    content = "scenario: template" + LIMITS + """stages:
- duration: 3s
  mode: constant
  rate: 4/s
  jitter: 0
  distribution: none
"""
    result = parse_config_file(content, NOW)
    dry_run = new_dry_run(result.stages)
    rates = [dry_run(NOW + timedelta(seconds=s)) for s in range(6)]
    assert rates == [4, 4, 4, 4, 4, 0]