"""Argument validators for the tsdb-cli commands.

Each validator takes the raw positional argument strings of its command,
raises ArgumentError when they are unusable and otherwise returns the parsed
arguments. Nothing here touches the network.
"""

import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Sequence

from dateutil.parser import ParserError, parse

from tsdb_cli import ArgumentError


@dataclass(frozen=True)
class BackfillArgs:
    series: str
    start: datetime
    end: datetime
    interval_ms: int
    template: Dict[str, Any]


def _expect_count(command: str, args: Sequence[str], count: int) -> None:
    if len(args) != count:
        plural = "" if count == 1 else "s"
        raise ArgumentError(
            f"{command}: expected {count} argument{plural}, got {len(args)}"
        )


def parse_timestamp(value: str, label: str) -> datetime:
    """Parses a date/time string; naive values are taken as UTC."""
    try:
        parsed = parse(value)
    except (ParserError, OverflowError, ValueError) as e:
        raise ArgumentError(f"invalid {label} '{value}': {e}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_interval(value: str) -> int:
    """Parses an interval in milliseconds; it must be a positive integer."""
    try:
        interval = int(value, 10)
    except ValueError as e:
        raise ArgumentError(f"invalid interval '{value}': not an integer") from e
    if interval <= 0:
        raise ArgumentError(f"invalid interval '{value}': must be positive")
    return interval


def _reject_constant(name: str) -> Any:
    # NaN and Infinity cannot be written as field values
    raise ArgumentError(f"invalid template: {name} is not a valid field value")


def _parse_finite_float(text: str) -> float:
    number = float(text)
    if math.isinf(number):
        _reject_constant(text)
    return number


def parse_template(value: str) -> Dict[str, Any]:
    try:
        template = json.loads(
            value, parse_constant=_reject_constant, parse_float=_parse_finite_float
        )
    except json.JSONDecodeError as e:
        raise ArgumentError(f"invalid template: {e}") from e
    if not isinstance(template, dict):
        raise ArgumentError(
            f"invalid template: expected a JSON object, got {type(template).__name__}"
        )
    return template


def validate_backfill(args: Sequence[str]) -> BackfillArgs:
    _expect_count("backfill", args, 5)
    series, start_arg, end_arg, interval_arg, template_arg = args
    if not series:
        raise ArgumentError("backfill: series name cannot be empty")

    start = parse_timestamp(start_arg, "start")
    end = parse_timestamp(end_arg, "end")
    if start > end:
        raise ArgumentError(f"start '{start_arg}' is after end '{end_arg}'")

    return BackfillArgs(
        series=series,
        start=start,
        end=end,
        interval_ms=parse_interval(interval_arg),
        template=parse_template(template_arg),
    )


def validate_dropseries(args: Sequence[str]) -> str:
    _expect_count("dropseries", args, 1)
    if not args[0]:
        raise ArgumentError("dropseries: series name cannot be empty")
    return args[0]


def validate_series(args: Sequence[str]) -> None:
    _expect_count("series", args, 0)


def validate_query(args: Sequence[str]) -> str:
    _expect_count("query", args, 1)
    if not args[0].strip():
        raise ArgumentError("query: query string cannot be empty")
    return args[0]


def validate_gen_config(args: Sequence[str]) -> None:
    _expect_count("gen-config", args, 0)

