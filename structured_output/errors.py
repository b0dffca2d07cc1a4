from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

if TYPE_CHECKING:
    from .models import Attempt, ValidationIssue


class StructuredOutputError(RuntimeError):
    """Base class for every error raised by the recovery layer."""

    kind = "structured_output"


class RecoverableError(StructuredOutputError):
    """A malformation that a repair prompt can fix; never escapes a session unwrapped."""

    kind = "recoverable"


class ExtractionError(RecoverableError):
    kind = "extraction"


class SyntaxRepairFailure(RecoverableError):
    """The parser still rejects the repaired text."""

    kind = "syntax"

    def __init__(
        self,
        message: str,
        *,
        position: int = 0,
        line: int = 1,
        column: int = 1,
        diagnostic: str = "",
    ) -> None:
        super().__init__(message)
        self.position = position
        self.line = line
        self.column = column
        self.diagnostic = diagnostic

    def detail(self) -> str:
        if not self.diagnostic:
            return str(self)
        return f"{self}\n{self.diagnostic}"


class ValidationFailure(RecoverableError):
    """The payload parsed but violates the schema contract."""

    kind = "validation"

    def __init__(self, issues: Sequence["ValidationIssue"]) -> None:
        self.issues: List["ValidationIssue"] = list(issues)
        summary = "; ".join(issue.describe() for issue in self.issues)
        super().__init__(f"Schema validation failed: {summary}")

    @property
    def paths(self) -> List[str]:
        return [issue.path for issue in self.issues]


class GeneratorError(StructuredOutputError):
    """The generation call itself failed (transport, auth or provider)."""

    kind = "generator"


class SessionTimeout(StructuredOutputError):
    """The session deadline elapsed before a valid value was produced."""

    kind = "timeout"

    def __init__(self, message: str, attempts: Sequence["Attempt"] = ()) -> None:
        super().__init__(message)
        self.attempts: List["Attempt"] = list(attempts)


class SessionExhausted(StructuredOutputError):
    """Every allowed attempt failed; carries the full attempt history."""

    kind = "exhausted"

    def __init__(
        self,
        attempts: Sequence["Attempt"],
        *,
        excerpt_limit: int = 500,
    ) -> None:
        self.attempts: List["Attempt"] = list(attempts)
        last = self.attempts[-1] if self.attempts else None
        self.last_error: Optional[Exception] = last.error if last else None
        self.last_output = last.raw.excerpt(excerpt_limit) if last and last.raw else ""
        super().__init__(
            f"Could not obtain a valid structured value after {len(self.attempts)} attempts.\n"
            f"Last error: {self.last_error}\n"
            f"Last output (truncated): {self.last_output}"
        )

    @property
    def errors(self) -> List[Optional[Exception]]:
        return [attempt.error for attempt in self.attempts]
