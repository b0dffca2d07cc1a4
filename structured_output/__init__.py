"""
Recovery of schema-conformant values from unreliable model output.

The package normalizes streamed text, extracts the JSON payload, repairs
common syntax defects, parses strictly, validates against a JSON Schema
contract and, when any of that fails, asks the generator to try again with
a repair prompt.
"""

from .errors import (
    ExtractionError,
    GeneratorError,
    SessionExhausted,
    SessionTimeout,
    StructuredOutputError,
    SyntaxRepairFailure,
    ValidationFailure,
)
from .events import CollectingSink, LoggingSink, NullSink
from .models import Attempt, DiagnosticEvent, GenerationResult, SessionState, TokenUsage
from .pipeline import RepairPipeline, parse_model_output
from .repair import REPAIR_RULES, RepairEngine, repair_text
from .session import (
    RepairSession,
    build_repair_prompt,
    recover_structured_value,
    recover_structured_value_sync,
    run_blocking,
)
from .validation import SchemaValidator

__all__ = [
    "Attempt",
    "CollectingSink",
    "DiagnosticEvent",
    "ExtractionError",
    "GenerationResult",
    "GeneratorError",
    "LoggingSink",
    "NullSink",
    "REPAIR_RULES",
    "RepairEngine",
    "RepairPipeline",
    "RepairSession",
    "SchemaValidator",
    "SessionExhausted",
    "SessionState",
    "SessionTimeout",
    "StructuredOutputError",
    "SyntaxRepairFailure",
    "TokenUsage",
    "ValidationFailure",
    "build_repair_prompt",
    "parse_model_output",
    "recover_structured_value",
    "recover_structured_value_sync",
    "repair_text",
    "run_blocking",
]
