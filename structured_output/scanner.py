"""
Character-level string-boundary tracking.

A single cursor walks the text and reports, for every character, whether it
sits in structural text, inside a double-quoted literal, or right after a
backslash inside a literal. Repair rules that must not touch string contents
build on this instead of keeping their own flags.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Iterator, List, Tuple


class ScanState(str, Enum):
    NORMAL = "normal"
    IN_STRING = "in_string"
    ESCAPED = "escaped"


def step(state: ScanState, char: str) -> ScanState:
    """Return the state after consuming ``char``."""
    if state is ScanState.ESCAPED:
        return ScanState.IN_STRING
    if state is ScanState.IN_STRING:
        if char == "\\":
            return ScanState.ESCAPED
        if char == '"':
            return ScanState.NORMAL
        return ScanState.IN_STRING
    if char == '"':
        return ScanState.IN_STRING
    return ScanState.NORMAL


def scan(text: str) -> Iterator[Tuple[int, str, ScanState]]:
    """
    Yield ``(index, char, state)`` where ``state`` is the state the cursor was
    in when it reached ``char``. An opening quote is reported as NORMAL and a
    closing quote as IN_STRING.
    """
    state = ScanState.NORMAL
    for index, char in enumerate(text):
        yield index, char, state
        state = step(state, char)


def final_state(text: str) -> ScanState:
    state = ScanState.NORMAL
    for char in text:
        state = step(state, char)
    return state


_PLACEHOLDER_OPEN = "\ue000"
_PLACEHOLDER_CLOSE = "\ue001"
_PLACEHOLDER_RE = re.compile(r'"\ue000(\d+)\ue001"')


def mask_strings(text: str) -> Tuple[str, List[str]]:
    """
    Replace every complete double-quoted literal with an opaque placeholder
    literal. An unterminated literal at the end of the text is left as is.
    """
    literals: List[str] = []
    pieces: List[str] = []
    start = -1
    last = 0
    for index, char, state in scan(text):
        if state is ScanState.NORMAL and char == '"':
            start = index
        elif state is ScanState.IN_STRING and char == '"' and start >= 0:
            pieces.append(text[last:start])
            pieces.append(f'"{_PLACEHOLDER_OPEN}{len(literals)}{_PLACEHOLDER_CLOSE}"')
            literals.append(text[start : index + 1])
            last = index + 1
            start = -1
    pieces.append(text[last:])
    return "".join(pieces), literals


def unmask_strings(masked: str, literals: List[str]) -> str:
    if not literals:
        return masked
    return _PLACEHOLDER_RE.sub(lambda match: literals[int(match.group(1))], masked)
