from __future__ import annotations

import re

from .errors import ExtractionError

FENCE_RE = re.compile(r"```[A-Za-z0-9_+-]*[ \t]*\n?(.*?)```", re.DOTALL)
OBJECT_SPAN_RE = re.compile(r"\{.*\}", re.DOTALL)


def strip_code_fence(text: str) -> str | None:
    """Return the interior of the first fenced block, or None if there is none."""
    match = FENCE_RE.search(text)
    if not match:
        return None
    return match.group(1).strip()


def extract_candidate(text: str) -> str:
    """
    Isolate the text believed to hold the structured payload.

    Fenced content wins; otherwise the widest ``{...}`` span is taken. The
    result is then sliced again from its first ``{`` to its last ``}`` so any
    prose the first pass missed is discarded. A payload whose closing brace
    was never emitted runs from the first ``{`` to the end of the text.

    Raises:
        ExtractionError: If the text contains no ``{`` at all.
    """
    fenced = strip_code_fence(text)
    if fenced is not None and "{" in fenced:
        candidate = fenced
    else:
        match = OBJECT_SPAN_RE.search(text)
        candidate = match.group(0) if match else text.strip()

    first = candidate.find("{")
    if first == -1:
        raise ExtractionError("No JSON object found in model output (no '{' present)")
    last = candidate.rfind("}")
    if last > first:
        return candidate[first : last + 1]
    return candidate[first:].rstrip()
