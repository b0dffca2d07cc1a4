"""Strict JSON parsing with a readable failure report."""

from __future__ import annotations

import json
from typing import Any

from .errors import SyntaxRepairFailure

DIAGNOSTIC_RADIUS = 300
_RULE = "-" * 80


def line_and_column(text: str, position: int) -> tuple[int, int]:
    position = max(0, min(position, len(text)))
    line = text.count("\n", 0, position) + 1
    column = position - (text.rfind("\n", 0, position) + 1) + 1
    return line, column


def _visualize(line: str) -> str:
    return line.replace("\t", "→").replace(" ", "·")


def render_diagnostic(text: str, position: int, radius: int = DIAGNOSTIC_RADIUS) -> str:
    """
    Render ``radius`` characters either side of ``position`` with line
    numbers, visible whitespace and a caret under the failing column.
    """
    position = max(0, min(position, len(text)))
    start = max(0, position - radius)
    end = min(len(text), position + radius)

    fail_line, fail_column = line_and_column(text, position)
    first_line, first_column = line_and_column(text, start)
    width = len(str(first_line + text.count("\n", start, end)))

    rendered = [f"Around line {fail_line}, column {fail_column} (offset {position}):", _RULE]
    for offset, line in enumerate(text[start:end].split("\n")):
        number = first_line + offset
        rendered.append(f"{str(number).rjust(width)} | {_visualize(line)}")
        if number == fail_line:
            # The first rendered line may start part-way through a source line.
            lead = fail_column - (first_column if offset == 0 else 1)
            rendered.append(f"{' ' * width} | {' ' * lead}^")
    rendered.append(_RULE)
    return "\n".join(rendered)


def parse_strict(text: str) -> Any:
    """
    Parse ``text`` as strict JSON.

    Raises:
        SyntaxRepairFailure: With the failing offset, its line/column and a
            rendered diagnostic window.
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        position = exc.pos if exc.pos is not None else 0
        line, column = line_and_column(text, position)
        raise SyntaxRepairFailure(
            f"JSON parse error: {exc.msg} at line {line} column {column} (char {position})",
            position=position,
            line=line,
            column=column,
            diagnostic=render_diagnostic(text, position),
        ) from exc
