"""
Removal of streaming-duplication artifacts.

Locally streamed models sometimes re-emit a line, either verbatim or as a
growing prefix of the final line. Each line is compared with a bounded
window of the lines after it; related lines are grouped and only the most
complete member of the group survives. Only lines that start with a
``"key":`` member are grouped; bracket lines and bare array elements are
always kept, since both repeat in valid output. The window is a heuristic
with no completeness guarantee: duplicates further apart than ``window``
lines, or separated by a line that opens or closes a container, are left
alone.
"""

from __future__ import annotations

import re
from typing import List

from .scanner import ScanState, scan

DEFAULT_WINDOW = 6
PREFIX_MIN_CHARS = 20
PREFIX_MIN_RATIO = 0.8

_CLOSING_DELIMITERS = ("}", "]", ",")
_STANDALONE_DELIMITERS = {"{", "}", "[", "]"}
_MEMBER_RE = re.compile(r'^"(?:[^"\\]|\\.)*"\s*:')


def _ends_with_delimiter(line: str) -> bool:
    return line.endswith(_CLOSING_DELIMITERS)


def _is_member(line: str) -> bool:
    """True for lines that start with a ``"key":`` object member."""
    return bool(_MEMBER_RE.match(line))


def _has_brackets(line: str) -> bool:
    return any(
        state is ScanState.NORMAL and char in "{}[]"
        for _, char, state in scan(line)
    )


def _has_unmatched_quote(line: str) -> bool:
    quotes = sum(
        1 for _, char, state in scan(line)
        if char == '"' and state is not ScanState.ESCAPED
    )
    return quotes % 2 == 1


def common_prefix_length(first: str, second: str) -> int:
    limit = min(len(first), len(second))
    index = 0
    while index < limit and first[index] == second[index]:
        index += 1
    return index


def _shares_long_prefix(first: str, second: str) -> bool:
    prefix = common_prefix_length(first, second)
    shorter = min(len(first), len(second))
    return prefix >= PREFIX_MIN_CHARS and prefix >= shorter * PREFIX_MIN_RATIO


def is_incomplete_line(line: str) -> bool:
    """True for lines cut off mid-member: a bare trailing colon or an open quote."""
    if line in _STANDALONE_DELIMITERS:
        return False
    if line.endswith(":"):
        return True
    return line.endswith('"') and _has_unmatched_quote(line)


def normalize_lines(text: str, window: int = DEFAULT_WINDOW) -> str:
    """Return ``text`` with duplicated and truncated streamed lines removed."""
    if window < 0:
        raise ValueError("window must be non-negative")

    lines = [line.strip() for line in text.splitlines()]
    lines = [line for line in lines if line]

    processed: set[int] = set()
    keep: List[int] = []

    for i, line in enumerate(lines):
        if i in processed:
            continue
        processed.add(i)
        # Bracket lines and bare array elements repeat legitimately.
        if not _is_member(line):
            keep.append(i)
            continue

        best = i
        group = [i]

        for j in range(i + 1, min(i + window + 1, len(lines))):
            if j in processed:
                continue
            candidate = lines[j]
            if not _is_member(candidate):
                # A container boundary ends the look-ahead.
                if _has_brackets(candidate):
                    break
                continue

            # Later lines are compared with the most complete line seen so far.
            current = lines[best]
            current_delimited = _ends_with_delimiter(current)
            candidate_delimited = _ends_with_delimiter(candidate)

            if candidate == current:
                group.append(j)
                continue

            if candidate.startswith(current) and len(candidate) > len(current):
                if candidate_delimited:
                    best = j
                    group.append(j)
                    continue
            elif current.startswith(candidate) and len(current) > len(candidate):
                if current_delimited:
                    group.append(j)
                    continue
            elif _shares_long_prefix(current, candidate) and current_delimited != candidate_delimited:
                if candidate_delimited:
                    best = j
                group.append(j)
                continue

            if _has_brackets(candidate):
                break

        processed.update(group)
        keep.append(best)

    kept_lines = [lines[index] for index in sorted(keep)]
    return "\n".join(line for line in kept_lines if not is_incomplete_line(line))
