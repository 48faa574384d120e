import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Dict, Any, Iterable, Mapping, Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class ResultTable:
    """One result table: ordered column names plus positional rows."""

    columns: List[str]
    rows: List[List[Any]] = field(default_factory=list)
    name: Optional[str] = None


def _influx_result_dict_to_tables(result_dict: Dict[str, Any]) -> List[ResultTable]:
    """
    Converts a /query response body into result tables.

    The dictionary is expected to follow the structure of the /query endpoint
    JSON response: a 'results' list with one entry per statement, each
    holding an optional 'series' list whose items carry 'name', 'columns'
    and 'values'. Statements without series (e.g. DROP) contribute nothing.

    Args:
        result_dict: A dictionary representing the JSON response.

    Returns:
        The tables in response order.

    Raises:
        TypeError: If 'result_dict' or one of its parts has the wrong shape.
        KeyError: If 'result_dict' is missing the 'results' key, or a series
                  is missing its 'columns'.
    """
    if not isinstance(result_dict, dict):
        raise TypeError("Input 'result_dict' must be a dictionary.")
    if "results" not in result_dict:
        raise KeyError("Input dictionary missing required key: 'results'")

    results = result_dict["results"]
    if not isinstance(results, list):
        raise TypeError("Key 'results' must be a list.")

    tables = []
    for i, result in enumerate(results):
        if not isinstance(result, dict):
            raise TypeError(f"Result item at index {i} is not a dictionary: {result}")
        for series in result.get("series") or []:
            if "columns" not in series:
                raise KeyError(f"Series in result {i} missing required key: 'columns'")
            values = series.get("values") or []
            if not isinstance(values, list):
                raise TypeError(f"Key 'values' in result {i} must be a list.")
            tables.append(
                ResultTable(
                    columns=list(series["columns"]),
                    rows=[list(row) for row in values],
                    name=series.get("name"),
                )
            )
    return tables


# --- Line protocol ---


def _escape_key(key: str) -> str:
    return key.replace("\\", "\\\\").replace(",", "\\,").replace("=", "\\=").replace(" ", "\\ ")


def _escape_measurement(name: str) -> str:
    return name.replace("\\", "\\\\").replace(",", "\\,").replace(" ", "\\ ")


def _format_field_value(value: Any) -> str:
    """Formats one field value; ints get the 'i' suffix, strings are quoted."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError(f"Field value {value} is not representable.")
        return repr(value)
    if not isinstance(value, str):
        # Nested objects and arrays are stored as their JSON text
        value = json.dumps(value, separators=(",", ":"))
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def to_epoch_ms(value: Any) -> int:
    """Converts a datetime (naive means UTC) or epoch milliseconds to an int."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return (value - EPOCH) // timedelta(milliseconds=1)
    return int(value)


def point_to_line(series: str, point: Mapping[str, Any]) -> str:
    """
    Encodes one point as a line of line protocol.

    Every key except 'time' becomes a field; None values are skipped.

    Raises:
        ValueError: If the point has no fields left to write.
    """
    fields = [
        f"{_escape_key(str(key))}={_format_field_value(value)}"
        for key, value in point.items()
        if key != "time" and value is not None
    ]
    if not fields:
        raise ValueError(f"Point has no fields to write: {dict(point)}")

    line = f"{_escape_measurement(series)} {','.join(fields)}"
    if point.get("time") is not None:
        line += f" {to_epoch_ms(point['time'])}"
    return line


def points_to_line_protocol(series: str, points: Iterable[Mapping[str, Any]]) -> List[str]:
    return [point_to_line(series, point) for point in points]
