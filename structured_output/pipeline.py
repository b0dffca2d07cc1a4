from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .balancer import balance_brackets
from .events import EventSink, NullSink
from .extractor import extract_candidate
from .models import DiagnosticEvent, SessionState
from .normalizer import DEFAULT_WINDOW, normalize_lines
from .parser import parse_strict
from .repair import RepairEngine

StateCallback = Callable[[SessionState], None]


@dataclass
class PipelineResult:
    normalized: str
    candidate: str
    repaired: str
    value: Any
    applied_rules: List[str]


def _ignore_state(state: SessionState) -> None:
    return None


class RepairPipeline:
    """
    Turn one raw model output into a parsed value: normalize lines, extract
    the payload, run the repair rules to a fixed point, balance brackets and
    parse exactly once.
    """

    def __init__(
        self,
        engine: Optional[RepairEngine] = None,
        *,
        window: int = DEFAULT_WINDOW,
        sink: Optional[EventSink] = None,
    ) -> None:
        self.sink = sink or NullSink()
        self.engine = engine or RepairEngine(sink=self.sink)
        self.window = window

    def run(
        self,
        raw_text: str,
        *,
        attempt: Optional[int] = None,
        on_state: Optional[StateCallback] = None,
    ) -> PipelineResult:
        enter = on_state or _ignore_state

        enter(SessionState.EXTRACTING)
        normalized = normalize_lines(raw_text, window=self.window)
        candidate = extract_candidate(normalized)

        enter(SessionState.REPAIRING)
        outcome = self.engine.repair(candidate, attempt=attempt)
        repaired = balance_brackets(outcome.text)
        if repaired != outcome.text:
            self.sink(
                DiagnosticEvent(
                    kind="repair.balanced",
                    message="Appended closing delimiters for unmatched openers",
                    attempt=attempt,
                    data={"tail": repaired[-20:]},
                )
            )

        enter(SessionState.PARSING)
        value = parse_strict(repaired)
        return PipelineResult(
            normalized=normalized,
            candidate=candidate,
            repaired=repaired,
            value=value,
            applied_rules=outcome.applied,
        )


def parse_model_output(raw_text: str) -> Any:
    """Parse a single model output without schema validation or retries."""
    return RepairPipeline().run(raw_text).value
