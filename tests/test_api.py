import dataclasses
from datetime import datetime, timedelta

from f1load.api import Options, Rates, Trigger


def _noop(*args, **kwargs):
    return None


def test_trigger_options_are_not_shared():
    first = Trigger(trigger=_noop, dry_run=lambda now: 1)
    second = Trigger(trigger=_noop, dry_run=lambda now: 1)
    first.options.concurrency = 50
    assert second.options.concurrency == Options().concurrency
    assert first.options.concurrency == 50


def test_rates_holds_callable():
    rates = Rates(rate=lambda now: now.second, iteration_duration=timedelta(seconds=1))
    assert rates.rate(datetime(2020, 12, 10, 10, 0, 7)) == 7
    assert rates.iteration_duration == timedelta(seconds=1)
    assert rates.duration == timedelta(0)


def test_trigger_dry_run_is_callable():
    trigger = Trigger(trigger=_noop, dry_run=lambda now: 6, description="6/s constant rate")
    assert trigger.dry_run(datetime(2020, 1, 1)) == 6
    assert trigger.description == "6/s constant rate"


def test_options_replace_keeps_other_fields():
    base = Options(scenario="template", concurrency=50, max_iterations=100, ignore_dropped=True)
    changed = dataclasses.replace(base, max_failures=10)
    assert changed.scenario == "template"
    assert changed.concurrency == 50
    assert changed.max_iterations == 100
    assert changed.ignore_dropped is True
    assert changed.max_failures == 10
    assert base.max_failures == Options().max_failures
    assert changed != base