"""Parsing of rate expressions and duration strings."""

from __future__ import annotations

import re
from datetime import timedelta
from fractions import Fraction

__all__ = ["RateError", "parse_rate", "parse_duration", "format_duration"]


class RateError(ValueError):
    """Raised when a rate expression cannot be parsed."""


_INT_RE = re.compile(r"[+-]?[0-9]+")
_DIGIT_RE = re.compile(r"[0-9]")
_COMPONENT_RE = re.compile(r"([0-9]+(?:\.[0-9]*)?|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)")
_UNIT_NS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_SECOND_NS = 1_000_000_000


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"1h30m"``, ``"1.5s"`` or ``"100ms"``."""
    body = text
    sign = 1
    if body[:1] in ("+", "-"):
        sign = -1 if body[0] == "-" else 1
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise ValueError(f'invalid duration "{text}"')

    total = Fraction(0)
    pos = 0
    while pos < len(body):
        match = _COMPONENT_RE.match(body, pos)
        if match is None:
            raise ValueError(f'invalid duration "{text}"')
        number, unit = match.groups()
        total += Fraction(number) * _UNIT_NS[unit]
        pos = match.end()

    nanoseconds = int(total)
    return timedelta(microseconds=sign * (nanoseconds // 1000))


def _fraction_text(value: int, precision: int) -> str:
    whole, remainder = divmod(value, 10**precision)
    digits = f"{remainder:0{precision}d}".rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


def format_duration(value: timedelta) -> str:
    """Render a duration in the compact ``1h2m3.5s`` form."""
    nanoseconds = (value // timedelta(microseconds=1)) * 1000
    if nanoseconds == 0:
        return "0s"

    sign = "-" if nanoseconds < 0 else ""
    magnitude = abs(nanoseconds)

    if magnitude < _SECOND_NS:
        if magnitude < 1_000:
            return f"{sign}{magnitude}ns"
        if magnitude < 1_000_000:
            return f"{sign}{_fraction_text(magnitude, 3)}µs"
        return f"{sign}{_fraction_text(magnitude, 6)}ms"

    total_seconds, fraction_ns = divmod(magnitude, _SECOND_NS)
    digits = f"{fraction_ns:09d}".rstrip("0")
    text = f"{total_seconds % 60}" + (f".{digits}" if digits else "") + "s"
    total_minutes = total_seconds // 60
    if total_minutes:
        text = f"{total_minutes % 60}m{text}"
        hours = total_minutes // 60
        if hours:
            text = f"{hours}h{text}"
    return sign + text


def _atoi(text: str, rate_arg: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise RateError(f"unable to parse rate {rate_arg}: invalid syntax")
    return int(text)


def parse_rate(rate_arg: str) -> tuple[int, timedelta]:
    """Parse ``<count>/<duration>`` (or a bare count per second) into a count and unit."""
    if "/" in rate_arg:
        count_text, unit_text = rate_arg.split("/", 1)
        rate = _atoi(count_text, rate_arg)
        if rate < 0:
            raise RateError(f"rate {rate_arg} can't be negative")
        if not _DIGIT_RE.fullmatch(unit_text[:1]):
            unit_text = "1" + unit_text
        try:
            unit = parse_duration(unit_text)
        except ValueError as exc:
            raise RateError(f"unable to parse unit {rate_arg}: {exc}") from exc
        return rate, unit

    rate = _atoi(rate_arg, rate_arg)
    if rate < 0:
        raise RateError(f"rate {rate_arg} can't be negative")
    return rate, timedelta(seconds=1)