"""
This module defines the Pydantic models and dataclasses shared by the
structured-output recovery layer. They describe what a generation call
returned, what the schema validator concluded, and what each attempt of a
repair session recorded, so that every component speaks the same types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SessionState(str, Enum):
    """
    Enumerates the states a repair session moves through on each attempt.
    """
    GENERATING = "generating"
    EXTRACTING = "extracting"
    REPAIRING = "repairing"
    PARSING = "parsing"
    VALIDATING = "validating"
    REGENERATING = "regenerating"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class TokenUsage:
    prompt_units: int = 0
    completion_units: int = 0
    total_units: int = 0


@dataclass(frozen=True)
class GenerationResult:
    """Unmodified text returned by one generation call."""

    content: str
    usage: Optional[TokenUsage] = None

    @classmethod
    def coerce(cls, value: Any) -> "GenerationResult":
        if isinstance(value, GenerationResult):
            return value
        if isinstance(value, str):
            return cls(content=value)
        if isinstance(value, dict) and "content" in value:
            usage = value.get("usage")
            if isinstance(usage, dict):
                usage = TokenUsage(
                    prompt_units=int(usage.get("prompt_units", 0)),
                    completion_units=int(usage.get("completion_units", 0)),
                    total_units=int(usage.get("total_units", 0)),
                )
            return cls(content=str(value["content"] or ""), usage=usage)
        raise TypeError(f"Generator returned unsupported value of type {type(value).__name__}")

    def excerpt(self, limit: int) -> str:
        return self.content[:limit]


class ValidationIssue(BaseModel):
    """
    Represents a single violation found while checking a parsed value
    against its schema contract.
    """
    path: str = Field(description="Dotted/indexed location of the offending value, '$' for the root.")
    message: str = Field(description="A human-readable description of the violation.")
    validator: str = Field(default="", description="The schema keyword that rejected the value (e.g. 'type').")

    def describe(self) -> str:
        return f"{self.path}: {self.message}"


class ValidationReport(BaseModel):
    """
    Summarizes the outcome of validating one parsed value. A valid report
    carries the value; an invalid one carries every issue that was found.
    """
    is_valid: bool = Field(description="True if the value satisfies the contract, False otherwise.")
    issues: List[ValidationIssue] = Field(
        default_factory=list,
        description="Every violation found during the structural walk, in document order."
    )
    value: Any = Field(default=None, description="The validated value when is_valid is True.")

    def summary(self) -> str:
        return "; ".join(issue.describe() for issue in self.issues)


@dataclass
class Attempt:
    """
    One generation + repair + validate round of a session. Attempts after the
    first keep the error that triggered them so the regeneration prompt can
    be rebuilt from history alone.
    """

    index: int
    prompt: str
    raw: Optional[GenerationResult] = None
    error: Optional[Exception] = None
    triggered_by: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.raw is not None and self.error is None


@dataclass(frozen=True)
class DiagnosticEvent:
    """A discrete observation emitted by the recovery layer."""

    kind: str
    message: str
    attempt: Optional[int] = None
    state: Optional[SessionState] = None
    data: Dict[str, Any] = field(default_factory=dict)
