"""
Heuristic text repair for malformed JSON emitted by language models.

The engine applies a named, ordered list of rewrite rules and reruns the
whole list until a pass changes nothing or the iteration cap is reached.
The order is part of the contract: later rules assume the earlier ones have
already run (comma insertion expects lost object braces to be back, quote
and key rules expect string literals to be closed and escaped).

Rules marked ``masked`` only ever see structural text: complete string
literals are swapped for placeholders before the rule runs and restored
afterwards, so URLs, apostrophes and commas inside values are never touched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from .events import EventSink, NullSink
from .models import DiagnosticEvent
from .scanner import ScanState, mask_strings, scan, step, unmask_strings

DEFAULT_MAX_ITERATIONS = 10

_RAW_KEY = r'"(?:[^"\\\n]|\\.)*"\s*:'
_IDENTIFIER_KEY = r'"[A-Za-z_$][\w$]*"\s*:'
# On masked text every complete literal is a placeholder, so any quoted run
# followed by a colon is a key.
_MASKED_KEY = r'"[^"\n]*"\s*:'

_KEY_AHEAD_RE = re.compile(r"\s*" + _RAW_KEY)
_STRAY_OBJECT_RE = re.compile(r"\s*\{(?=\s*" + _RAW_KEY + ")")
_BREAK_BEFORE_KEY_RE = re.compile(r"\r?\n\s*" + _IDENTIFIER_KEY)

_CONTROL_ESCAPES = {
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\f": "\\f",
    "\b": "\\b",
}

_COMMA_BEFORE_KEY_RE = re.compile(
    r'([\]}"\d]|\b(?:true|false|null))(\s*)(?=' + _MASKED_KEY + ")"
)
_COMMA_BEFORE_CONTAINER_RE = re.compile(
    r'([\]}"\d]|\b(?:true|false|null))(\s*)(?=[{\[])'
)
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_$][\w$]*)(\s*:)")
_SINGLE_QUOTE_OPEN_RE = re.compile(r"([{:,\[\s])'")
_SINGLE_QUOTE_CLOSE_RE = re.compile(r"'(?=\s*[,}\]:])")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_LINE_COMMENT_RE = re.compile(r"//[^\n]*")
_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_SPACE_AFTER_PUNCT_RE = re.compile(r'([":])\s{2,}')
_SPACE_BEFORE_CLOSER_RE = re.compile(r"\s+([}\]])")
_SPACE_AFTER_COMMA_RE = re.compile(r",\s{2,}")


@dataclass(frozen=True)
class RepairRule:
    name: str
    apply: Callable[[str], str]
    masked: bool = False

    def run(self, text: str) -> str:
        if not self.masked:
            return self.apply(text)
        masked, literals = mask_strings(text)
        return unmask_strings(self.apply(masked), literals)


def _pop(stack: List[str], closer: str) -> None:
    opener = "{" if closer == "}" else "["
    if stack and stack[-1] == opener:
        stack.pop()


def insert_missing_object_brace(text: str) -> str:
    """
    Re-open objects whose ``{`` was lost inside an array: a ``[`` or ``},``
    followed directly by ``"key":`` gets a ``{`` in front of the key.
    """
    stack: List[str] = []
    inserts: List[int] = []
    previous = ""
    for index, char, state in scan(text):
        if state is not ScanState.NORMAL or char.isspace():
            continue
        if char in "{[":
            stack.append(char)
        elif char in "}]":
            _pop(stack, char)
        opens_element = char == "[" or (char == "," and previous == "}")
        if opens_element and stack and stack[-1] == "[":
            match = _KEY_AHEAD_RE.match(text, index + 1)
            if match:
                matched = match.group(0)
                inserts.append(index + 1 + len(matched) - len(matched.lstrip()))
                stack.append("{")
        previous = char

    if not inserts:
        return text
    pieces: List[str] = []
    last = 0
    for position in inserts:
        pieces.append(text[last:position])
        pieces.append("{")
        last = position
    pieces.append(text[last:])
    return "".join(pieces)


def close_broken_strings(text: str) -> str:
    """
    Treat a line break inside a string literal as the end of that literal
    when the next line starts a new ``"key":``; a closing quote and a comma
    are inserted at the break.
    """
    out: List[str] = []
    state = ScanState.NORMAL
    for index, char in enumerate(text):
        if state is ScanState.IN_STRING and char in "\r\n" and _BREAK_BEFORE_KEY_RE.match(text, index):
            out.append('",')
            out.append(char)
            state = ScanState.NORMAL
            continue
        out.append(char)
        state = step(state, char)
    return "".join(out)


def escape_control_characters(text: str) -> str:
    """Escape raw control characters that sit inside an open string literal."""
    out: List[str] = []
    for _, char, state in scan(text):
        if state is ScanState.IN_STRING and char in _CONTROL_ESCAPES:
            out.append(_CONTROL_ESCAPES[char])
        else:
            out.append(char)
    return "".join(out)


def close_objects_before_array_end(text: str) -> str:
    """
    Close objects left open when their array ends (``"order": 3]`` becomes
    ``"order": 3}]``), and fold a stray ``, {"key": ...}`` inside an object
    back into that object, dropping the brace pair that wrapped it.
    """
    out: List[str] = []
    stack: List[str] = []
    drop_open_at = -1
    for index, char, state in scan(text):
        if state is not ScanState.NORMAL or char.isspace():
            out.append(char)
            continue

        if index == drop_open_at:
            stack.append("~")
            drop_open_at = -1
            continue

        if char in "{[":
            stack.append(char)
        elif char == "}":
            if stack and stack[-1] == "~":
                stack.pop()
                continue
            _pop(stack, char)
        elif char == "]":
            if "[" in stack:
                while stack[-1] != "[":
                    if stack.pop() == "{":
                        out.append("}")
                stack.pop()
        elif char == "," and stack and stack[-1] in "{~":
            match = _STRAY_OBJECT_RE.match(text, index + 1)
            if match:
                drop_open_at = index + len(match.group(0))
        out.append(char)
    return "".join(out)


def insert_missing_commas(text: str) -> str:
    """Insert the comma between a finished value and the next key or container."""
    text = _COMMA_BEFORE_KEY_RE.sub(r"\1,\2", text)
    return _COMMA_BEFORE_CONTAINER_RE.sub(r"\1,\2", text)


def quote_bare_keys(text: str) -> str:
    return _BARE_KEY_RE.sub(r'\1"\2"\3', text)


def normalize_quotes(text: str) -> str:
    """Turn single-quoted delimiters next to structural punctuation into double quotes."""
    text = _SINGLE_QUOTE_OPEN_RE.sub(r'\1"', text)
    return _SINGLE_QUOTE_CLOSE_RE.sub('"', text)


def strip_trailing_commas(text: str) -> str:
    # Two passes catch ",]," runs left behind by nested removals.
    text = _TRAILING_COMMA_RE.sub(r"\1", text)
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def strip_comments(text: str) -> str:
    text = _BLOCK_COMMENT_RE.sub("", text)
    return _LINE_COMMENT_RE.sub("", text)


def collapse_whitespace(text: str) -> str:
    text = _SPACE_AFTER_PUNCT_RE.sub(r"\1 ", text)
    text = _SPACE_BEFORE_CLOSER_RE.sub(r"\1", text)
    return _SPACE_AFTER_COMMA_RE.sub(", ", text)


REPAIR_RULES: Sequence[RepairRule] = (
    RepairRule("insert_missing_object_brace", insert_missing_object_brace),
    RepairRule("close_broken_strings", close_broken_strings),
    RepairRule("escape_control_characters", escape_control_characters),
    RepairRule("close_objects_before_array_end", close_objects_before_array_end),
    RepairRule("insert_missing_commas", insert_missing_commas, masked=True),
    RepairRule("quote_bare_keys", quote_bare_keys, masked=True),
    RepairRule("normalize_quotes", normalize_quotes, masked=True),
    RepairRule("strip_trailing_commas", strip_trailing_commas, masked=True),
    RepairRule("strip_comments", strip_comments, masked=True),
    RepairRule("collapse_whitespace", collapse_whitespace, masked=True),
)


@dataclass
class RepairOutcome:
    text: str
    iterations: int
    converged: bool
    applied: List[str] = field(default_factory=list)


class RepairEngine:
    """Run the rule list to a fixed point under an iteration cap."""

    def __init__(
        self,
        rules: Sequence[RepairRule] = REPAIR_RULES,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        sink: Optional[EventSink] = None,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.rules = tuple(rules)
        self.max_iterations = max_iterations
        self.sink = sink or NullSink()

    def repair(self, text: str, *, attempt: Optional[int] = None) -> RepairOutcome:
        applied: List[str] = []
        for iteration in range(1, self.max_iterations + 1):
            before = text
            for rule in self.rules:
                rewritten = rule.run(text)
                if rewritten != text:
                    applied.append(rule.name)
                    self.sink(
                        DiagnosticEvent(
                            kind="repair.rule",
                            message=f"{rule.name} rewrote the payload",
                            attempt=attempt,
                            data={"rule": rule.name, "iteration": iteration},
                        )
                    )
                    text = rewritten
            if text == before:
                return RepairOutcome(text=text, iterations=iteration, converged=True, applied=applied)

        self.sink(
            DiagnosticEvent(
                kind="repair.iteration_cap",
                message=f"Repair rules still changing text after {self.max_iterations} passes",
                attempt=attempt,
                data={"max_iterations": self.max_iterations},
            )
        )
        return RepairOutcome(
            text=text, iterations=self.max_iterations, converged=False, applied=applied
        )


def repair_text(text: str) -> str:
    return RepairEngine().repair(text).text
