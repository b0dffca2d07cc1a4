from __future__ import annotations

from typing import Dict, List

from .scanner import ScanState, scan

_CLOSERS = {"{": "}", "[": "]"}


def bracket_tally(text: str) -> Dict[str, int]:
    """Count structural brackets, ignoring any that sit inside string literals."""
    tally = {"{": 0, "}": 0, "[": 0, "]": 0}
    for _, char, state in scan(text):
        if state is ScanState.NORMAL and char in tally:
            tally[char] += 1
    return tally


def _open_stack(text: str) -> List[str]:
    stack: List[str] = []
    for _, char, state in scan(text):
        if state is not ScanState.NORMAL:
            continue
        if char in _CLOSERS:
            stack.append(char)
        elif char in "}]" and stack and _CLOSERS[stack[-1]] == char:
            stack.pop()
    return stack


def balance_brackets(text: str) -> str:
    """
    Append the closers needed to match every unmatched opener.

    Exactly ``openers - closers`` of each kind is appended. Where the still
    open containers can be read off the text, closers follow that nesting;
    whatever deficit remains is appended as ``}`` then ``]``.
    """
    tally = bracket_tally(text)
    deficit = {
        "}": max(0, tally["{"] - tally["}"]),
        "]": max(0, tally["["] - tally["]"]),
    }
    if not deficit["}"] and not deficit["]"]:
        return text

    stripped = text.rstrip()
    if stripped.endswith(","):
        stripped = stripped[:-1].rstrip()

    closers: List[str] = []
    for opener in reversed(_open_stack(stripped)):
        closer = _CLOSERS[opener]
        if deficit[closer]:
            closers.append(closer)
            deficit[closer] -= 1
    closers.extend("}" * deficit["}"])
    closers.extend("]" * deficit["]"])
    return stripped + "".join(closers)
