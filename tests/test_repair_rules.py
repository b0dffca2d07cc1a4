from __future__ import annotations

import json

import pytest

from structured_output.events import CollectingSink
from structured_output.repair import (
    REPAIR_RULES,
    RepairEngine,
    RepairRule,
    close_broken_strings,
    close_objects_before_array_end,
    escape_control_characters,
    insert_missing_object_brace,
    repair_text,
)

RULES = {rule.name: rule for rule in REPAIR_RULES}


def run_rule(name: str, text: str) -> str:
    return RULES[name].run(text)


def test_rule_order_is_fixed():
    assert [rule.name for rule in REPAIR_RULES] == [
        "insert_missing_object_brace",
        "close_broken_strings",
        "escape_control_characters",
        "close_objects_before_array_end",
        "insert_missing_commas",
        "quote_bare_keys",
        "normalize_quotes",
        "strip_trailing_commas",
        "strip_comments",
        "collapse_whitespace",
    ]


def test_insert_missing_object_brace():
    assert insert_missing_object_brace('[{"id": 1}, "id": 2}]') == '[{"id": 1}, {"id": 2}]'
    assert insert_missing_object_brace('["id": 1}]') == '[{"id": 1}]'


def test_insert_missing_object_brace_ignores_objects():
    text = '{"list": [{"a": 1}], "x": {"k": 1}, "y": 2}'

    assert insert_missing_object_brace(text) == text


def test_close_broken_strings():
    text = '{"title": "Hello\n"next": 1}'

    assert close_broken_strings(text) == '{"title": "Hello",\n"next": 1}'


def test_escape_control_characters():
    text = '{"text": "line one\nline two\tend"}'

    repaired = escape_control_characters(text)

    assert repaired == '{"text": "line one\\nline two\\tend"}'
    assert json.loads(repaired)["text"] == "line one\nline two\tend"


def test_escape_control_characters_leaves_structure_alone():
    text = '{\n\t"a": 1\n}'

    assert escape_control_characters(text) == text


def test_close_objects_before_array_end():
    assert close_objects_before_array_end('{"segments": [{"order": 3]}') == '{"segments": [{"order": 3}]}'


def test_close_objects_folds_stray_object_into_its_parent():
    assert close_objects_before_array_end('{"a": 1, {"b": 2}}') == '{"a": 1, "b": 2}'


def test_close_objects_leaves_valid_nesting_alone():
    text = '{"a": [{"b": 1}, {"c": [2, 3]}]}'

    assert close_objects_before_array_end(text) == text


def test_insert_missing_commas():
    assert run_rule("insert_missing_commas", '"a": 1 "b": 2') == '"a": 1, "b": 2'
    assert run_rule("insert_missing_commas", '{"x": true "y": null}') == '{"x": true, "y": null}'
    assert run_rule("insert_missing_commas", '[{"a": 1} {"b": 2}]') == '[{"a": 1}, {"b": 2}]'


def test_insert_missing_commas_before_containers_after_scalars():
    assert run_rule("insert_missing_commas", '["x" {"b": 1}]') == '["x", {"b": 1}]'
    assert run_rule("insert_missing_commas", "[1 [2]]") == "[1, [2]]"
    assert run_rule("insert_missing_commas", "[true [false], null {}]") == "[true, [false], null, {}]"
    assert run_rule("insert_missing_commas", '{"a": {"b": 1}}') == '{"a": {"b": 1}}'


def test_insert_missing_commas_ignores_string_contents():
    text = '{"quote": "she said 1 \\"b\\": 2"}'

    assert run_rule("insert_missing_commas", text) == text


def test_quote_bare_keys():
    assert run_rule("quote_bare_keys", '{name: "x", count: 2}') == '{"name": "x", "count": 2}'


def test_quote_bare_keys_ignores_string_contents():
    text = '{"note": "see {item: 1}"}'

    assert run_rule("quote_bare_keys", text) == text


def test_normalize_quotes():
    assert run_rule("normalize_quotes", "{'name': 'x'}") == '{"name": "x"}'


def test_normalize_quotes_keeps_apostrophes_in_values():
    text = '{"caption": "it\'s done", "b": 1}'

    assert run_rule("normalize_quotes", text) == text


def test_strip_trailing_commas():
    assert run_rule("strip_trailing_commas", '{"a": [1, 2,],}') == '{"a": [1, 2]}'


def test_strip_comments_keeps_urls():
    text = '{"url": "http://x.com", // note\n"b": 1 /* c */}'

    repaired = run_rule("strip_comments", text)

    assert json.loads(repaired) == {"url": "http://x.com", "b": 1}


def test_collapse_whitespace():
    assert run_rule("collapse_whitespace", '{"a":    1,     "b": 2   }') == '{"a": 1, "b": 2}'


def test_masked_rule_sees_placeholders_only():
    seen = []

    def record(text: str) -> str:
        seen.append(text)
        return text

    RepairRule("record", record, masked=True).run('{"k": "v // x"}')

    assert "//" not in seen[0]


def test_missing_comma_example_parses():
    assert json.loads(repair_text('{"a": 1 "b": 2}')) == {"a": 1, "b": 2}


def test_missing_brace_before_array_close_example():
    text = '{"structure": {"total_duration": 30, "segments": [{"id":"s1","asset_id":"a1","duration":10,"order":1]}}'

    value = json.loads(repair_text(text))

    assert value["structure"]["segments"] == [{"id": "s1", "asset_id": "a1", "duration": 10, "order": 1}]


def test_engine_is_idempotent_on_valid_json():
    payload = {
        "structure": {
            "segments": [
                {"id": "s1", "note": "it's // not a comment, {really}"},
                {"id": "s2", "tags": ["a", "b"]},
            ],
            "url": "https://example.com/a?b=1",
        },
        "flag": True,
        "nothing": None,
    }
    for text in (json.dumps(payload), json.dumps(payload, indent=2)):
        assert json.loads(repair_text(text)) == payload


def test_engine_reports_rules_and_converges():
    sink = CollectingSink()

    outcome = RepairEngine(sink=sink).repair("{name: 'x',}", attempt=2)

    assert json.loads(outcome.text) == {"name": "x"}
    assert outcome.converged
    assert {"quote_bare_keys", "normalize_quotes", "strip_trailing_commas"} <= set(outcome.applied)
    assert all(event.attempt == 2 for event in sink.of_kind("repair.rule"))


def test_engine_stops_at_the_iteration_cap():
    grow = RepairRule("grow", lambda text: text + " ")
    sink = CollectingSink()

    outcome = RepairEngine([grow], max_iterations=3, sink=sink).repair("{}")

    assert not outcome.converged
    assert outcome.iterations == 3
    assert outcome.text == "{}   "
    assert sink.kinds()[-1] == "repair.iteration_cap"


def test_engine_rejects_a_zero_cap():
    with pytest.raises(ValueError):
        RepairEngine(max_iterations=0)
