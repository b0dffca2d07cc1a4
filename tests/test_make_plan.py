from __future__ import annotations

import asyncio
import json

import pytest

from app.config import RecoverySettings
from plan_generation import make_plan
from plan_generation.prompts import SYSTEM_PROMPT, build_user_prompt
from plan_generation.validators.schema import validate_plan_schema
from structured_output import CollectingSink, SessionExhausted


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("PLAN_MAX_ATTEMPTS", "PLAN_TIMEOUT_SECONDS", "PLAN_SAVE_RAW_RESPONSE"):
        monkeypatch.delenv(name, raising=False)


def test_user_prompt_describes_the_request(video_request):
    prompt = build_user_prompt(video_request)

    assert "PROJECT ID: demo-001" in prompt
    assert "- img1 (image): https://cdn.example.com/img1.png" in prompt
    assert "Target duration: 20 seconds" in prompt
    assert '"text": "Hello"' in prompt


def test_user_prompt_tolerates_sparse_requests():
    prompt = build_user_prompt({"project_id": "p"})

    assert "(none)" in prompt
    assert "Target duration: auto seconds" in prompt
    assert "Voiceover: none" in prompt


def test_video_structure_schema(video_structure):
    assert list(validate_plan_schema(video_structure)) == []

    broken = json.loads(json.dumps(video_structure))
    broken["structure"]["segments"][1]["order"] = 0
    del broken["structure"]["voiceover_start"]

    paths = [issue.path for issue in validate_plan_schema(broken)]
    assert set(paths) == {"structure.voiceover_start", "structure.segments[1].order"}


def test_generate_video_structure_repairs_and_validates(scripted, video_request, video_structure):
    text = json.dumps(video_structure).replace('"order": 1}', '"order": 1', 1)
    assert text != json.dumps(video_structure)
    generate = scripted(["Sure, here it is:\n" + text])
    sink = CollectingSink()

    plan = asyncio.run(make_plan.generate_video_structure(generate, video_request, sink=sink))

    assert plan == video_structure
    assert generate.calls[0]["system"] == SYSTEM_PROMPT
    assert "repair.rule" in sink.kinds()


def test_generate_video_structure_honours_max_attempts(scripted, video_request):
    generate = scripted(["nothing"] * 5)

    with pytest.raises(SessionExhausted) as info:
        asyncio.run(
            make_plan.generate_video_structure(
                generate, video_request, settings=RecoverySettings(max_attempts=4), sink=CollectingSink()
            )
        )

    assert len(info.value.attempts) == 4


def write_request(tmp_path, video_request):
    request_path = tmp_path / "request.json"
    request_path.write_text(json.dumps(video_request), encoding="utf-8")
    return request_path


def test_cli_dry_run_prints_prompts(tmp_path, video_request, capsys):
    request_path = write_request(tmp_path, video_request)

    assert make_plan.main([str(request_path), str(tmp_path / "plan.json"), "--dry-run"]) == 0

    out = capsys.readouterr().out
    assert "lead video architect" in out
    assert "PROJECT ID: demo-001" in out
    assert not (tmp_path / "plan.json").exists()


def test_cli_writes_the_validated_plan(tmp_path, monkeypatch, scripted, video_request, video_structure):
    generate = scripted([json.dumps(video_structure)])
    monkeypatch.setattr(make_plan, "create_generator_from_env", lambda model_name=None: generate)
    request_path = write_request(tmp_path, video_request)
    output = tmp_path / "out" / "plan.json"

    assert make_plan.main([str(request_path), str(output)]) == 0
    assert json.loads(output.read_text(encoding="utf-8")) == video_structure


def test_cli_saves_the_raw_response_on_exhaustion(tmp_path, monkeypatch, scripted, video_request):
    generate = scripted(["first failure", "second failure"])
    monkeypatch.setattr(make_plan, "create_generator_from_env", lambda model_name=None: generate)
    request_path = write_request(tmp_path, video_request)
    output = tmp_path / "plan.json"

    assert make_plan.main([str(request_path), str(output), "--max-attempts", "2"]) == 1
    assert not output.exists()
    assert (tmp_path / "plan.raw_response.txt").read_text(encoding="utf-8") == "second failure"


def test_cli_reports_missing_request(tmp_path):
    with pytest.raises(SystemExit):
        make_plan.main([str(tmp_path / "missing.json"), str(tmp_path / "plan.json")])
