from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from .models import ValidationIssue, ValidationReport

ROOT_PATH = "$"
_REQUIRED_RE = re.compile(r"^'(?P<name>.+)' is a required property$")


def format_path(parts: Iterable[Any]) -> str:
    """Render a jsonschema path deque as ``structure.segments[0].order``."""
    rendered = ""
    for part in parts:
        if isinstance(part, int):
            rendered += f"[{part}]"
        else:
            rendered += f".{part}" if rendered else str(part)
    return rendered or ROOT_PATH


def _issue_from_error(error: ValidationError) -> ValidationIssue:
    parts: List[Any] = list(error.absolute_path)
    if error.validator == "required":
        match = _REQUIRED_RE.match(error.message)
        if match:
            parts.append(match.group("name"))
    return ValidationIssue(
        path=format_path(parts),
        message=error.message,
        validator=str(error.validator),
    )


class SchemaValidator:
    """
    Check parsed values against a JSON Schema contract.

    The contract itself is checked once on construction; every call to
    :meth:`validate` walks the whole value and reports all violations.
    """

    def __init__(self, schema: Dict[str, Any]) -> None:
        Draft202012Validator.check_schema(schema)
        self.schema = schema
        self._validator = Draft202012Validator(schema)

    def iter_issues(self, value: Any) -> Iterable[ValidationIssue]:
        errors = sorted(self._validator.iter_errors(value), key=lambda e: list(map(str, e.absolute_path)))
        for error in errors:
            yield _issue_from_error(error)

    def validate(self, value: Any) -> ValidationReport:
        issues = list(self.iter_issues(value))
        if issues:
            return ValidationReport(is_valid=False, issues=issues)
        return ValidationReport(is_valid=True, value=value)


def validate_value(value: Any, schema: Dict[str, Any]) -> ValidationReport:
    return SchemaValidator(schema).validate(value)
