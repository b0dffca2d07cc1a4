"""
Repair-retry controller.

A session asks the generator for a payload, pushes the reply through the
repair pipeline and the schema validator, and on a recoverable failure asks
the generator again with a repair prompt built from the failed reply and
its error. Attempts run strictly one after another; the session stops at
the first valid value or once ``max_attempts`` replies have failed.

Generator failures and the session deadline are not repaired here: they
end the session immediately and do not consume an attempt.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .errors import (
    ExtractionError,
    GeneratorError,
    RecoverableError,
    SessionExhausted,
    SessionTimeout,
    StructuredOutputError,
    SyntaxRepairFailure,
    ValidationFailure,
)
from .events import EventSink, resolve_sink
from .models import Attempt, DiagnosticEvent, GenerationResult, SessionState, TokenUsage
from .pipeline import RepairPipeline
from .validation import SchemaValidator

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
REPAIR_EXCERPT_CHARS = 1500
EVENT_EXCERPT_CHARS = 200

GeneratorFn = Callable[[str, Optional[str]], Union[Any, Awaitable[Any]]]
Schema = Union[Dict[str, Any], SchemaValidator]

_DELIMITER_GUIDANCE = """COMMON FIXES:
- Every object inside an array must close with } before the array closes with ]
- WRONG: {"id": "seg1", "order": 1]   (missing closing brace)
- RIGHT: {"id": "seg1", "order": 1}]  (object closed before the array)
- Separate every property and every array element with a comma
- Quote every property name and every string value with double quotes"""


def describe_error(error: Exception) -> str:
    if isinstance(error, SyntaxRepairFailure):
        return error.detail()
    return str(error)


def corrective_guidance(error: Exception) -> str:
    if isinstance(error, ValidationFailure):
        lines = ["Fix every one of these schema violations:"]
        lines.extend(f"- {issue.describe()}" for issue in error.issues)
        return "\n".join(lines)
    if isinstance(error, ExtractionError):
        return (
            "Your reply did not contain a JSON object. The reply must start with { "
            "and end with }."
        )
    message = str(error)
    if "delimiter" in message or "Expecting property name" in message or "Expecting value" in message:
        return _DELIMITER_GUIDANCE
    return "Make sure the JSON is complete and that every bracket and string is closed."


def build_repair_prompt(
    raw_output: str,
    error: Exception,
    *,
    excerpt_chars: int = REPAIR_EXCERPT_CHARS,
) -> str:
    """Build the prompt that asks the generator to re-emit a corrected payload."""
    return f"""The JSON you returned is not valid.

**Your output**

```
{raw_output[:excerpt_chars]}
```

**Error**

{describe_error(error)}

{corrective_guidance(error)}

**CRITICAL**: Rewrite the ENTIRE JSON object from scratch. Make sure:
1. Every object in an array closes with }} before the array closes with ]
2. All properties are separated by commas
3. The JSON is valid and can be parsed by a strict JSON parser
4. You output ONLY the JSON - no markdown, no code fences, no explanations"""


def _first_line(error: Exception) -> str:
    lines = str(error).splitlines()
    return lines[0] if lines else type(error).__name__


def _is_async_callable(fn: Any) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    )


def _settle(future: "asyncio.Future[Any]", result: Any, error: Optional[BaseException]) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


async def run_blocking(fn: Callable[..., Any], *args: Any) -> Any:
    """
    Run a blocking call on a daemon thread and await its result.

    Unlike ``asyncio.to_thread`` the thread is not owned by the loop's
    executor, so a cancelled wait returns at once and ``asyncio.run`` does
    not join the abandoned call on shutdown. The call itself keeps running
    until it returns; its result is discarded.
    """
    loop = asyncio.get_running_loop()
    future: "asyncio.Future[Any]" = loop.create_future()

    def worker() -> None:
        result: Any = None
        error: Optional[BaseException] = None
        try:
            result = fn(*args)
        except Exception as exc:  # re-raised in the awaiting coroutine
            error = exc
        try:
            loop.call_soon_threadsafe(_settle, future, result, error)
        except RuntimeError:
            LOGGER.debug("Event loop closed before %r returned; result dropped", fn)

    threading.Thread(target=worker, name="blocking-generator", daemon=True).start()
    return await future


async def _call_generator(
    generate: GeneratorFn, prompt: str, system_instructions: Optional[str]
) -> Any:
    if _is_async_callable(generate):
        result = generate(prompt, system_instructions)
    else:
        # Blocking generators run on their own thread so the deadline can fire.
        result = await run_blocking(generate, prompt, system_instructions)
    if inspect.isawaitable(result):
        result = await result
    return result


class RepairSession:
    """Bounded generate → repair → validate loop for one logical request."""

    def __init__(
        self,
        generate: GeneratorFn,
        initial_prompt: str,
        system_instructions: Optional[str],
        schema: Schema,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeout: Optional[float] = None,
        sink: Optional[EventSink] = None,
        pipeline: Optional[RepairPipeline] = None,
        excerpt_chars: int = REPAIR_EXCERPT_CHARS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive")
        self.generate = generate
        self.initial_prompt = initial_prompt
        self.system_instructions = system_instructions
        self.validator = schema if isinstance(schema, SchemaValidator) else SchemaValidator(schema)
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.sink = resolve_sink(sink)
        self.pipeline = pipeline or RepairPipeline(sink=self.sink)
        self.excerpt_chars = excerpt_chars

        self.attempts: List[Attempt] = []
        self.state = SessionState.GENERATING
        self.outcome: Any = None
        self._started = False

    @property
    def total_usage(self) -> TokenUsage:
        usages = [a.raw.usage for a in self.attempts if a.raw is not None and a.raw.usage]
        return TokenUsage(
            prompt_units=sum(u.prompt_units for u in usages),
            completion_units=sum(u.completion_units for u in usages),
            total_units=sum(u.total_units for u in usages),
        )

    def _emit(self, kind: str, message: str, attempt: Optional[int] = None, **data: Any) -> None:
        self.sink(
            DiagnosticEvent(kind=kind, message=message, attempt=attempt, state=self.state, data=data)
        )

    def _enter(self, state: SessionState, attempt: Optional[int] = None) -> None:
        self.state = state
        self._emit("session.state", state.value, attempt)

    async def run(self) -> Any:
        if self._started:
            raise RuntimeError("A RepairSession can only be run once")
        self._started = True

        loop = asyncio.get_running_loop()
        deadline = None if self.timeout is None else loop.time() + self.timeout
        prompt = self.initial_prompt
        trigger: Optional[Exception] = None

        while True:
            index = len(self.attempts) + 1
            self._enter(SessionState.GENERATING, index)
            raw = await self._generate(prompt, index, deadline)

            attempt = Attempt(index=index, prompt=prompt, raw=raw, triggered_by=trigger)
            self.attempts.append(attempt)
            self._emit("attempt.generated", f"received {len(raw.content)} characters", index)

            try:
                value = self._process(attempt)
            except RecoverableError as exc:
                attempt.error = exc
                self._emit(
                    "attempt.failed",
                    _first_line(exc),
                    index,
                    error_kind=exc.kind,
                    excerpt=raw.excerpt(EVENT_EXCERPT_CHARS),
                )
                if index >= self.max_attempts:
                    self._enter(SessionState.EXHAUSTED, index)
                    exhausted = SessionExhausted(self.attempts)
                    self._emit("session.exhausted", _first_line(exhausted), index)
                    raise exhausted from exc
                self._enter(SessionState.REGENERATING, index)
                prompt = build_repair_prompt(raw.content, exc, excerpt_chars=self.excerpt_chars)
                trigger = exc
                continue

            self._enter(SessionState.SUCCESS, index)
            self.outcome = value
            self._emit("session.success", f"valid value after {index} attempt(s)", index)
            return value

    def _process(self, attempt: Attempt) -> Any:
        result = self.pipeline.run(
            attempt.raw.content,
            attempt=attempt.index,
            on_state=lambda state: self._enter(state, attempt.index),
        )
        self._enter(SessionState.VALIDATING, attempt.index)
        report = self.validator.validate(result.value)
        if not report.is_valid:
            raise ValidationFailure(report.issues)
        return report.value

    async def _generate(self, prompt: str, index: int, deadline: Optional[float]) -> GenerationResult:
        loop = asyncio.get_running_loop()
        remaining: Optional[float] = None
        if deadline is not None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise self._timed_out(index)
        task = asyncio.ensure_future(
            _call_generator(self.generate, prompt, self.system_instructions)
        )
        try:
            done, _ = await asyncio.wait({task}, timeout=remaining)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if task not in done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise self._timed_out(index)

        try:
            result = task.result()
        except StructuredOutputError as exc:
            self._emit("generator.failed", str(exc), index, error_kind=exc.kind)
            raise
        except Exception as exc:
            raise self._generator_failed(index, exc) from exc
        try:
            return GenerationResult.coerce(result)
        except TypeError as exc:
            raise self._generator_failed(index, exc) from exc

    def _generator_failed(self, index: int, exc: Exception) -> GeneratorError:
        error = GeneratorError(f"Generation call failed: {exc}")
        self._emit("generator.failed", str(error), index, error_kind=error.kind)
        return error

    def _timed_out(self, index: int) -> SessionTimeout:
        error = SessionTimeout(
            f"Session deadline of {self.timeout}s elapsed during attempt {index} "
            f"({len(self.attempts)} completed attempt(s))",
            self.attempts,
        )
        self._emit("session.timeout", str(error), index)
        return error


async def recover_structured_value(
    generate: GeneratorFn,
    initial_prompt: str,
    system_instructions: Optional[str],
    schema: Schema,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    *,
    timeout: Optional[float] = None,
    sink: Optional[EventSink] = None,
    pipeline: Optional[RepairPipeline] = None,
) -> Any:
    """
    Obtain a schema-conformant value from an unreliable generator.

    Args:
        generate: ``generate(prompt, system_instructions)`` returning a
            :class:`GenerationResult` or plain text, sync or async.
        initial_prompt: The task prompt for the first attempt.
        system_instructions: Fixed instructions sent with every attempt.
        schema: JSON Schema contract (or a prepared :class:`SchemaValidator`).
        max_attempts: Upper bound on generation calls that produce output.
        timeout: Optional deadline in seconds for the whole session.
        sink: Receives diagnostic events; defaults to logging.

    Returns:
        The validated value.

    Raises:
        SessionExhausted: Every attempt failed to parse or validate.
        SessionTimeout: The deadline elapsed.
        GeneratorError: The generation call itself failed.
    """
    session = RepairSession(
        generate,
        initial_prompt,
        system_instructions,
        schema,
        max_attempts=max_attempts,
        timeout=timeout,
        sink=sink,
        pipeline=pipeline,
    )
    return await session.run()


def recover_structured_value_sync(
    generate: GeneratorFn,
    initial_prompt: str,
    system_instructions: Optional[str],
    schema: Schema,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    **kwargs: Any,
) -> Any:
    return asyncio.run(
        recover_structured_value(
            generate, initial_prompt, system_instructions, schema, max_attempts, **kwargs
        )
    )
