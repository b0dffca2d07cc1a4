from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable

from structured_output import SchemaValidator
from structured_output.models import ValidationIssue

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "schemas" / "video_structure.schema.json"


def _load_schema() -> Dict[str, Any]:
    if not SCHEMA_PATH.exists():
        raise FileNotFoundError(f"Schema file not found at {SCHEMA_PATH}")
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


@lru_cache(maxsize=1)
def video_structure_validator() -> SchemaValidator:
    return SchemaValidator(_load_schema())


def validate_plan_schema(plan: Dict[str, Any]) -> Iterable[ValidationIssue]:
    yield from video_structure_validator().iter_issues(plan)
