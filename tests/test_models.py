from __future__ import annotations

import pytest

from structured_output.events import CollectingSink, LoggingSink, resolve_sink
from structured_output.models import Attempt, DiagnosticEvent, GenerationResult, TokenUsage


def test_generation_result_coercion():
    result = GenerationResult(content="{}")

    assert GenerationResult.coerce(result) is result
    assert GenerationResult.coerce("{}") == GenerationResult(content="{}")
    coerced = GenerationResult.coerce({"content": "{}", "usage": {"prompt_units": 2, "completion_units": 3, "total_units": 5}})
    assert coerced.usage == TokenUsage(2, 3, 5)
    with pytest.raises(TypeError):
        GenerationResult.coerce(["{}"])


def test_attempt_success_flag():
    attempt = Attempt(index=1, prompt="p", raw=GenerationResult(content="{}"))

    assert attempt.succeeded
    attempt.error = ValueError("bad")
    assert not attempt.succeeded


def test_logging_sink_levels(caplog):
    sink = LoggingSink()
    caplog.set_level("DEBUG", logger="structured_output.events")

    sink(DiagnosticEvent(kind="repair.rule", message="rule ran", attempt=1))
    sink(DiagnosticEvent(kind="attempt.failed", message="bad json", attempt=1))
    sink(DiagnosticEvent(kind="session.exhausted", message="gave up", attempt=3))
    sink(DiagnosticEvent(kind="session.success", message="done"))

    levels = [record.levelname for record in caplog.records]
    assert levels == ["DEBUG", "WARNING", "ERROR", "INFO"]
    assert caplog.records[1].getMessage() == "[attempt 1] attempt.failed | bad json"


def test_resolve_sink_defaults_to_logging():
    assert isinstance(resolve_sink(None), LoggingSink)
    collecting = CollectingSink()
    assert resolve_sink(collecting) is collecting
