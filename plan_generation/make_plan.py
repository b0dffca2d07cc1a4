"""Generate a validated video structure plan with an LLM."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.config import RecoverySettings, load_environment
from app.logging_utils import setup_logging
from app.utils import load_json, write_text
from structured_output import (
    GeneratorError,
    RepairEngine,
    RepairPipeline,
    SessionExhausted,
    SessionTimeout,
    recover_structured_value,
)
from structured_output.events import EventSink, resolve_sink

from .llm_client import create_generator_from_env
from .prompts import SYSTEM_PROMPT, build_user_prompt
from .validators.schema import video_structure_validator

LOGGER = logging.getLogger(__name__)


def build_pipeline(settings: RecoverySettings, sink: Optional[EventSink] = None) -> RepairPipeline:
    engine = RepairEngine(max_iterations=settings.repair_max_iterations, sink=sink)
    return RepairPipeline(engine, window=settings.normalizer_window, sink=sink)


async def generate_video_structure(
    generate,
    request: Dict[str, Any],
    max_attempts: Optional[int] = None,
    *,
    timeout: Optional[float] = None,
    settings: Optional[RecoverySettings] = None,
    sink: Optional[EventSink] = None,
) -> Dict[str, Any]:
    """
    Ask ``generate`` for a video structure and return it once it validates.

    Args:
        generate: Generator callable (see ``structured_output.session``).
        request: Planning request with ``project_id``, ``video_settings``,
            ``assets`` and ``instructions``.
        max_attempts: Overrides ``settings.max_attempts``.
        timeout: Overrides ``settings.timeout_seconds``.

    Raises:
        SessionExhausted, SessionTimeout, GeneratorError
    """
    settings = settings or RecoverySettings()
    sink = resolve_sink(sink)
    return await recover_structured_value(
        generate,
        build_user_prompt(request),
        SYSTEM_PROMPT,
        video_structure_validator(),
        max_attempts or settings.max_attempts,
        timeout=timeout if timeout is not None else settings.timeout_seconds,
        sink=sink,
        pipeline=build_pipeline(settings, sink),
    )


def dump_plan(plan: dict, output_path: Path) -> None:
    """Write the plan as pretty-printed JSON, creating the parent directory."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as handle:
        json.dump(plan, handle, indent=2, ensure_ascii=False)
        handle.write("\n")


def raw_response_path(output_plan: Path) -> Path:
    return output_plan.parent / f"{output_plan.stem}.raw_response.txt"


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a video structure plan with an LLM")
    parser.add_argument("request_path", type=Path, help="Planning request JSON")
    parser.add_argument("output_plan", type=Path, help="Destination JSON plan file")
    parser.add_argument("--model", dest="model_name", help="Override the model name")
    parser.add_argument(
        "--max-attempts",
        type=int,
        help="Generation attempts before giving up (default: PLAN_MAX_ATTEMPTS or 3)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Deadline in seconds for the whole session (default: PLAN_TIMEOUT_SECONDS)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the prompts without calling the model",
    )
    parser.add_argument("--log-file", type=Path, help="Also write logs to this file")
    return parser


def main(argv: List[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    load_environment()
    setup_logging(args.log_file)

    if not args.request_path.exists():
        parser.error(f"Request file not found: {args.request_path}")
    request = load_json(args.request_path)
    if not isinstance(request, dict):
        parser.error(f"Request must be a JSON object: {args.request_path}")

    if args.dry_run:
        print(SYSTEM_PROMPT)
        print()
        print(build_user_prompt(request))
        return 0

    try:
        settings = RecoverySettings.from_env()
        generate = create_generator_from_env(args.model_name)
    except (ValueError, GeneratorError) as exc:
        LOGGER.error("%s", exc)
        return 1

    try:
        plan = asyncio.run(
            generate_video_structure(
                generate,
                request,
                args.max_attempts,
                timeout=args.timeout,
                settings=settings,
            )
        )
    except SessionExhausted as exc:
        LOGGER.error("%s", exc)
        last = exc.attempts[-1] if exc.attempts else None
        if settings.save_raw_response and last is not None and last.raw is not None:
            debug_path = raw_response_path(args.output_plan)
            try:
                write_text(last.raw.content, debug_path)
                LOGGER.info("Raw model response saved to %s", debug_path)
            except OSError as write_exc:
                LOGGER.warning("Could not persist raw response for inspection: %s", write_exc)
        return 1
    except (SessionTimeout, GeneratorError) as exc:
        LOGGER.error("%s", exc)
        return 1

    dump_plan(plan, args.output_plan)
    LOGGER.info("Saved video structure plan to %s", args.output_plan)
    return 0


if __name__ == "__main__":
    sys.exit(main())
