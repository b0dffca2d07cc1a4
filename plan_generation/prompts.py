"""Prompt text for the video-structure planning stage."""
from __future__ import annotations

import json
from typing import Any, Dict, List

SYSTEM_PROMPT = """You are the lead video architect. Reply with exactly one JSON object matching the layout below.

RULES
1. Output ONLY the JSON object. No preface, no closing remarks, no markdown fences.
2. No comments and no text outside the JSON.
3. If you cannot build a valid plan, reply with {}.

LAYOUT
{
  "structure": {
    "total_duration": <number, seconds, greater than 0>,
    "segments": [
      {
        "id": <string, e.g. "seg1">,
        "asset_id": <string, id of an input asset>,
        "duration": <number, seconds, greater than 0>,
        "order": <integer, starting at 1>,
        "transition_type": <string or null, e.g. "crossfade">
      }
    ],
    "voiceover_duration": <number, seconds, 0 when there is no voiceover>,
    "voiceover_start": <number, seconds from the start>
  },
  "reasoning": <string, one or two sentences about your choices>
}"""


def _describe_assets(assets: List[Dict[str, Any]]) -> str:
    if not assets:
        return "  (none)"
    return "\n".join(
        f"  - {asset.get('id', '?')} ({asset.get('type', 'unknown')}): {asset.get('src', '')}"
        for asset in assets
    )


def build_user_prompt(request: Dict[str, Any]) -> str:
    """Render the planning request (project id, settings, assets, instructions) as a prompt."""
    settings = request.get("video_settings") or {}
    instructions = request.get("instructions") or {}
    voiceover = instructions.get("voiceover")
    voiceover_text = json.dumps(voiceover, ensure_ascii=False) if voiceover else "none"

    return f"""Plan the structure of this video.

PROJECT ID: {request.get("project_id", "unknown")}

VIDEO SETTINGS:
- Resolution: {settings.get("resolution", "not specified")}
- FPS: {settings.get("fps", "not specified")}
- Format: {settings.get("format", "not specified")}

ASSETS:
{_describe_assets(request.get("assets") or [])}

INSTRUCTIONS:
- Style: {instructions.get("style") or "not specified"}
- Camera movement: {instructions.get("camera_movement") or "not specified"}
- Transitions: {instructions.get("transitions") or "not specified"}
- Target duration: {instructions.get("target_duration") or "auto"} seconds
- Voiceover: {voiceover_text}

The plan must:
1. Use every image asset at least once
2. Hit the target duration, or pick a sensible one when it is auto
3. Order the segments so the story flows
4. Leave room for the transitions between segments
5. Reserve time for the voiceover when there is one

Return ONLY the JSON object described in the system instructions."""
