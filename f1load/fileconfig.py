"""Load profiles described by a YAML file made of consecutive stages."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Union

import yaml

from f1load.api import RateFunction
from f1load.constant import calculate_constant_rate
from f1load.gaussian import calculate_gaussian_rate
from f1load.ramp import calculate_ramp_rate
from f1load.rate import parse_duration
from f1load.staged import calculate_staged_rate

__all__ = [
    "ConfigError",
    "RunnableStage",
    "RunnableStages",
    "parse_config_file",
    "read_config_file",
    "new_dry_run",
]

_NULLS = {"", "~", "null", "Null", "NULL"}
_TRUE = {"true", "yes", "on", "y"}
_FALSE = {"false", "no", "off", "n"}


class ConfigError(ValueError):
    """Raised when a load profile file is malformed or incomplete."""


@dataclass
class RunnableStage:
    """One stage ready to run: either a rate function or a number of users."""

    stage_duration: timedelta
    params: dict[str, str] = field(default_factory=dict)
    rate: Optional[RateFunction] = None
    iteration_duration: timedelta = timedelta(0)
    users_concurrency: int = 0


@dataclass
class RunnableStages:
    """The stages still to run, together with the run limits from the file."""

    scenario: str
    stages: list[RunnableStage]
    stages_total_duration: timedelta
    max_duration: timedelta
    concurrency: int
    max_iterations: int
    max_failures: int
    max_failures_rate: int
    ignore_dropped: bool


@dataclass
class _StageConfig:
    mode: Optional[str] = None
    start_rate: Optional[str] = None
    end_rate: Optional[str] = None
    rate: Optional[str] = None
    distribution: Optional[str] = None
    weights: Optional[str] = None
    stages: Optional[str] = None
    concurrency: Optional[int] = None
    jitter: Optional[float] = None
    volume: Optional[float] = None
    duration: Optional[timedelta] = None
    iteration_frequency: Optional[timedelta] = None
    repeat: Optional[timedelta] = None
    peak: Optional[timedelta] = None
    standard_deviation: Optional[timedelta] = None
    parameters: Optional[dict[str, str]] = None


@dataclass
class _Limits:
    max_duration: Optional[timedelta] = None
    concurrency: Optional[int] = None
    max_iterations: Optional[int] = None
    max_failures: Optional[int] = None
    max_failures_rate: Optional[int] = None
    ignore_dropped: Optional[bool] = None


# --- YAML decoding -----------------------------------------------------------


def _where(node: yaml.Node) -> str:
    return f"line {node.start_mark.line + 1}"


def _decode_error(node: yaml.Node, message: str) -> ConfigError:
    return ConfigError(f"parsing config file as yaml: {_where(node)}: {message}")


def _scalar_text(node: yaml.Node, key: str) -> Optional[str]:
    if not isinstance(node, yaml.ScalarNode):
        raise _decode_error(node, f"cannot unmarshal a collection into {key}")
    if node.style is None and node.value in _NULLS:
        return None
    return node.value


def _to_str(node: yaml.Node, key: str) -> Optional[str]:
    return _scalar_text(node, key)


def _to_int(node: yaml.Node, key: str) -> Optional[int]:
    text = _scalar_text(node, key)
    if text is None:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return int(text, 0)
    except ValueError:
        raise _decode_error(node, f"cannot unmarshal `{text}` into an integer {key}") from None


def _to_uint(node: yaml.Node, key: str) -> Optional[int]:
    value = _to_int(node, key)
    if value is not None and value < 0:
        raise _decode_error(node, f"cannot unmarshal `{value}` into an unsigned {key}")
    return value


def _to_float(node: yaml.Node, key: str) -> Optional[float]:
    text = _scalar_text(node, key)
    if text is None:
        return None
    normalised = text.lower().replace("_", "")
    if normalised in (".inf", "+.inf"):
        return float("inf")
    if normalised == "-.inf":
        return float("-inf")
    if normalised == ".nan":
        return float("nan")
    try:
        return float(normalised)
    except ValueError:
        raise _decode_error(node, f"cannot unmarshal `{text}` into a number {key}") from None


def _to_bool(node: yaml.Node, key: str) -> Optional[bool]:
    text = _scalar_text(node, key)
    if text is None:
        return None
    lowered = text.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise _decode_error(node, f"cannot unmarshal `{text}` into a boolean {key}")


def _to_duration(node: yaml.Node, key: str) -> Optional[timedelta]:
    text = _scalar_text(node, key)
    if text is None:
        return None
    try:
        return parse_duration(text)
    except ValueError as exc:
        raise _decode_error(node, f"cannot unmarshal `{text}` into a duration {key}: {exc}") from None


def _to_time(node: yaml.Node, key: str) -> Optional[datetime]:
    text = _scalar_text(node, key)
    if text is None:
        return None
    normalised = text.strip()
    if normalised.endswith(("Z", "z")):
        normalised = normalised[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(normalised)
    except ValueError:
        raise _decode_error(node, f"cannot unmarshal `{text}` into a timestamp {key}") from None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _to_params(node: yaml.Node, key: str) -> Optional[dict[str, str]]:
    if isinstance(node, yaml.ScalarNode) and node.style is None and node.value in _NULLS:
        return None
    if not isinstance(node, yaml.MappingNode):
        raise _decode_error(node, f"cannot unmarshal into a mapping {key}")
    params = {}
    for key_node, value_node in node.value:
        name = _scalar_text(key_node, key)
        value = _scalar_text(value_node, key)
        params[name or ""] = value or ""
    return params


_STAGE_FIELDS: dict[str, tuple[str, Callable[[yaml.Node, str], Any]]] = {
    "mode": ("mode", _to_str),
    "start-rate": ("start_rate", _to_str),
    "end-rate": ("end_rate", _to_str),
    "rate": ("rate", _to_str),
    "distribution": ("distribution", _to_str),
    "weights": ("weights", _to_str),
    "stages": ("stages", _to_str),
    "concurrency": ("concurrency", _to_int),
    "jitter": ("jitter", _to_float),
    "volume": ("volume", _to_float),
    "duration": ("duration", _to_duration),
    "iteration-frequency": ("iteration_frequency", _to_duration),
    "repeat": ("repeat", _to_duration),
    "peak": ("peak", _to_duration),
    "standard-deviation": ("standard_deviation", _to_duration),
    "parameters": ("parameters", _to_params),
}

_LIMIT_FIELDS: dict[str, tuple[str, Callable[[yaml.Node, str], Any]]] = {
    "max-duration": ("max_duration", _to_duration),
    "concurrency": ("concurrency", _to_int),
    "max-iterations": ("max_iterations", _to_uint),
    "max-failures": ("max_failures", _to_uint),
    "max-failures-rate": ("max_failures_rate", _to_int),
    "ignore-dropped": ("ignore_dropped", _to_bool),
}


def _is_null(node: yaml.Node) -> bool:
    return isinstance(node, yaml.ScalarNode) and node.style is None and node.value in _NULLS


def _mapping_items(node: yaml.Node, what: str):
    if _is_null(node):
        return []
    if not isinstance(node, yaml.MappingNode):
        raise _decode_error(node, f"cannot unmarshal a non-mapping value into {what}")
    return [(_scalar_text(key, what) or "", value) for key, value in node.value]


def _decode_fields(node: yaml.Node, target: Any, fields: dict, what: str) -> Any:
    for key, value in _mapping_items(node, what):
        if key in fields:
            attr, convert = fields[key]
            setattr(target, attr, convert(value, key))
    return target


def _decode_stage(node: yaml.Node) -> _StageConfig:
    return _decode_fields(node, _StageConfig(), _STAGE_FIELDS, "a stage")


@dataclass
class _ConfigFile:
    scenario: Optional[str] = None
    default: _StageConfig = field(default_factory=_StageConfig)
    limits: _Limits = field(default_factory=_Limits)
    stage_start: Optional[datetime] = None
    stages: list[_StageConfig] = field(default_factory=list)


def _decode_config(content: Union[bytes, str]) -> _ConfigFile:
    try:
        root = yaml.compose(content, Loader=yaml.BaseLoader)
    except yaml.YAMLError as exc:
        raise ConfigError(f"parsing config file as yaml: {exc}") from exc

    config = _ConfigFile()
    if root is None:
        return config
    if not isinstance(root, yaml.MappingNode):
        raise _decode_error(root, "cannot unmarshal a non-mapping document into a config file")

    for key, value in _mapping_items(root, "a config file"):
        if key == "scenario":
            config.scenario = _to_str(value, key)
        elif key == "default":
            config.default = _decode_stage(value)
        elif key == "limits":
            config.limits = _decode_fields(value, _Limits(), _LIMIT_FIELDS, "limits")
        elif key == "schedule":
            for schedule_key, schedule_value in _mapping_items(value, "schedule"):
                if schedule_key == "stage-start":
                    config.stage_start = _to_time(schedule_value, schedule_key)
        elif key == "stages":
            if _is_null(value):
                config.stages = []
            elif isinstance(value, yaml.SequenceNode):
                config.stages = [_decode_stage(item) for item in value.value]
            else:
                raise _decode_error(value, "cannot unmarshal a non-sequence value into stages")
    return config


# --- validation --------------------------------------------------------------


def _validate_common_fields(config: _ConfigFile) -> None:
    limits = config.limits
    if config.scenario is None:
        raise ConfigError("missing scenario")
    if limits.max_duration is None:
        raise ConfigError("missing max-duration")
    if limits.concurrency is None:
        raise ConfigError("missing concurrency")
    if limits.max_iterations is None:
        raise ConfigError("missing max-iterations")
    if limits.ignore_dropped is None:
        raise ConfigError("missing ignore-dropped")
    if not config.stages:
        raise ConfigError("missing stages")

    if limits.max_failures is None:
        limits.max_failures = 0
    if limits.max_failures_rate is None:
        limits.max_failures_rate = 0
    if config.default.concurrency is None:
        config.default.concurrency = limits.concurrency


def _inherit(stage: _StageConfig, defaults: _StageConfig, idx: int, *required: tuple[str, str]) -> None:
    for attr, label in required:
        if getattr(stage, attr) is None:
            inherited = getattr(defaults, attr)
            if inherited is None:
                raise ConfigError(f"missing {label} at stage {idx}")
            setattr(stage, attr, inherited)


def _inherit_optional(stage: _StageConfig, defaults: _StageConfig, *, jitter: bool = True) -> None:
    if jitter and stage.jitter is None:
        stage.jitter = defaults.jitter
    if stage.parameters is None:
        stage.parameters = defaults.parameters if defaults.parameters is not None else {}


def _parse_stage(stage: _StageConfig, idx: int, defaults: _StageConfig) -> RunnableStage:
    mode = stage.mode
    assert stage.duration is not None
    if mode == "constant":
        _inherit(stage, defaults, idx, ("rate", "rate"), ("distribution", "distribution"))
        _inherit_optional(stage, defaults)
        try:
            rates = calculate_constant_rate(stage.jitter or 0.0, stage.rate, stage.distribution)
        except ValueError as exc:
            raise ConfigError(f"calculating constant rate: {exc}") from exc
    elif mode == "ramp":
        _inherit(
            stage, defaults, idx,
            ("start_rate", "start-rate"), ("end_rate", "end-rate"), ("distribution", "distribution"),
        )
        _inherit_optional(stage, defaults)
        try:
            rates = calculate_ramp_rate(
                stage.start_rate, stage.end_rate, stage.distribution, stage.duration, stage.jitter or 0.0
            )
        except ValueError as exc:
            raise ConfigError(f"calculating ramp rate: {exc}") from exc
    elif mode == "staged":
        _inherit(
            stage, defaults, idx,
            ("stages", "stages"), ("iteration_frequency", "iteration-frequency"),
            ("distribution", "distribution"),
        )
        _inherit_optional(stage, defaults)
        try:
            rates = calculate_staged_rate(
                stage.jitter or 0.0, stage.iteration_frequency, stage.stages, stage.distribution, None
            )
        except ValueError as exc:
            raise ConfigError(f"calculating staged rate: {exc}") from exc
    elif mode == "gaussian":
        _inherit(
            stage, defaults, idx,
            ("volume", "volume"), ("repeat", "repeat"),
            ("iteration_frequency", "iteration-frequency"), ("peak", "peak"),
            ("weights", "weights"), ("standard_deviation", "standard-deviation"),
            ("distribution", "distribution"),
        )
        _inherit_optional(stage, defaults)
        try:
            rates = calculate_gaussian_rate(
                stage.volume, stage.jitter or 0.0, stage.repeat, stage.iteration_frequency,
                stage.peak, stage.standard_deviation, stage.weights, stage.distribution,
            )
        except ValueError as exc:
            raise ConfigError(f"calculating gaussian rate: {exc}") from exc
    elif mode == "users":
        _inherit(stage, defaults, idx, ("concurrency", "users"))
        _inherit_optional(stage, defaults, jitter=False)
        return RunnableStage(
            stage_duration=stage.duration,
            params=dict(stage.parameters or {}),
            users_concurrency=stage.concurrency or 0,
        )
    else:
        raise ConfigError(f"invalid stage mode at stage {idx}")

    return RunnableStage(
        stage_duration=stage.duration,
        params=dict(stage.parameters or {}),
        rate=rates.rate,
        iteration_duration=rates.iteration_duration,
    )


def _align(moment: datetime, now: datetime) -> datetime:
    if now.tzinfo is None and moment.tzinfo is not None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def parse_config_file(content: Union[bytes, str], now: Optional[datetime] = None) -> RunnableStages:
    """Parse a load profile, skipping stages that a scheduled start has already passed."""
    if now is None:
        now = datetime.now(timezone.utc)

    config = _decode_config(content)
    _validate_common_fields(config)

    stages: list[RunnableStage] = []
    total = timedelta(0)
    for idx, raw in enumerate(config.stages):
        stage = dataclasses.replace(raw)
        _inherit(stage, config.default, idx, ("duration", "duration"), ("mode", "stage mode"))
        total += stage.duration

        stage_start = config.stage_start
        if stage_start is None or _align(stage_start, now) + total > now:
            stages.append(_parse_stage(stage, idx, config.default))

    limits = config.limits
    return RunnableStages(
        scenario=config.scenario,
        stages=stages,
        stages_total_duration=total,
        max_duration=limits.max_duration,
        concurrency=limits.concurrency,
        max_iterations=limits.max_iterations,
        max_failures=limits.max_failures,
        max_failures_rate=limits.max_failures_rate,
        ignore_dropped=limits.ignore_dropped,
    )


def read_config_file(path: Union[str, Path]) -> bytes:
    """Return the raw contents of a load profile file."""
    return Path(path).read_bytes()


def new_dry_run(stages: list[RunnableStage]) -> RateFunction:
    """Rate function stepping through the stages by elapsed time, for charting."""
    start_time: Optional[datetime] = None
    stage_idx = 0

    def dry_run(now: datetime) -> int:
        nonlocal start_time, stage_idx
        if stage_idx >= len(stages):
            return 0
        if start_time is None:
            start_time = now

        current = stages[stage_idx]
        if start_time + current.stage_duration < now:
            start_time += current.stage_duration
            stage_idx += 1

        if current.users_concurrency > 0:
            return 1
        return current.rate(now)

    return dry_run