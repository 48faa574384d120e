"""Text rendering of result tables."""

import json
import sys
from dataclasses import dataclass
from typing import Any, List, Optional, TextIO

from tabulate import tabulate

from tsdb_cli.utils import ResultTable

COLUMN_SEPARATOR = "  "
# --format value -> tabulate tablefmt
TABULATE_FORMATS = {
    "psql": "psql",
    "markdown": "github",
}
OUTPUT_FORMATS = ["plain", *TABULATE_FORMATS, "json"]


@dataclass(frozen=True)
class ColumnLayout:
    header: str
    width: int
    right_align: bool


def format_cell(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def is_numeric(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def column_layout(table: ResultTable) -> List[ColumnLayout]:
    """
    Computes the display width and alignment of every column.

    A column is as wide as its header or its widest cell, and is right-aligned
    when the first row holds a number in it.
    """
    first_row = table.rows[0] if table.rows else None
    layout = []
    for i, name in enumerate(table.columns):
        width = len(name)
        for row in table.rows:
            width = max(width, len(format_cell(row[i])))
        right_align = first_row is not None and is_numeric(first_row[i])
        layout.append(ColumnLayout(header=name.upper(), width=width, right_align=right_align))
    return layout


def _align(text: str, column: ColumnLayout) -> str:
    if column.right_align:
        return text.rjust(column.width)
    return text.ljust(column.width)


def format_table(table: ResultTable) -> List[str]:
    layout = column_layout(table)
    lines = [COLUMN_SEPARATOR.join(_align(c.header, c) for c in layout).rstrip()]
    for row in table.rows:
        cells = (_align(format_cell(value), c) for value, c in zip(row, layout))
        lines.append(COLUMN_SEPARATOR.join(cells).rstrip())
    return lines


def render(table: ResultTable, stream: Optional[TextIO] = None) -> None:
    """Writes the table as fixed-width text, one row per line."""
    out = stream or sys.stdout
    for line in format_table(table):
        out.write(line + "\n")


def render_tabulate(table: ResultTable, fmt: str, stream: Optional[TextIO] = None) -> None:
    out = stream or sys.stdout
    text = tabulate(
        table.rows,
        headers=table.columns,
        tablefmt=TABULATE_FORMATS[fmt],
        missingval="null",
    )
    out.write(text + "\n")


def render_json(table: ResultTable, stream: Optional[TextIO] = None) -> None:
    out = stream or sys.stdout
    json.dump(
        {"name": table.name, "columns": table.columns, "values": table.rows},
        out,
        indent=2,
    )
    out.write("\n")


def render_as(table: ResultTable, fmt: str = "plain", stream: Optional[TextIO] = None) -> None:
    """Renders the table in one of OUTPUT_FORMATS."""
    if fmt == "plain":
        render(table, stream)
    elif fmt == "json":
        render_json(table, stream)
    elif fmt in TABULATE_FORMATS:
        render_tabulate(table, fmt, stream)
    else:
        raise ValueError(f"Unknown output format '{fmt}'. Choose from {', '.join(OUTPUT_FORMATS)}.")
