from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest


class ScriptedGenerator:
    """Async generator stand-in that replays canned replies and records every call."""

    def __init__(self, replies: List[Any]) -> None:
        self.replies = list(replies)
        self.calls: List[Dict[str, Optional[str]]] = []

    async def __call__(self, prompt: str, system_instructions: Optional[str] = None) -> Any:
        self.calls.append({"prompt": prompt, "system": system_instructions})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def segments_schema() -> Dict[str, Any]:
    return {
        "type": "object",
        "required": ["structure"],
        "properties": {
            "structure": {
                "type": "object",
                "required": ["total_duration", "segments"],
                "properties": {
                    "total_duration": {"type": "number", "exclusiveMinimum": 0},
                    "segments": {
                        "type": "array",
                        "minItems": 1,
                        "items": {
                            "type": "object",
                            "required": ["id", "order"],
                            "properties": {
                                "id": {"type": "string"},
                                "duration": {"type": "number", "exclusiveMinimum": 0},
                                "order": {"type": "integer", "minimum": 1},
                            },
                        },
                    },
                },
            }
        },
    }


@pytest.fixture
def video_structure() -> Dict[str, Any]:
    return {
        "structure": {
            "total_duration": 20,
            "segments": [
                {"id": "seg1", "asset_id": "img1", "duration": 10, "order": 1, "transition_type": "crossfade"},
                {"id": "seg2", "asset_id": "img2", "duration": 10, "order": 2, "transition_type": None},
            ],
            "voiceover_duration": 18,
            "voiceover_start": 1,
        },
        "reasoning": "Two equal shots with a soft transition.",
    }


@pytest.fixture
def video_request() -> Dict[str, Any]:
    return {
        "project_id": "demo-001",
        "video_settings": {"resolution": "1920x1080", "fps": 30, "format": "mp4"},
        "assets": [
            {"id": "img1", "type": "image", "src": "https://cdn.example.com/img1.png"},
            {"id": "img2", "type": "image", "src": "https://cdn.example.com/img2.png"},
        ],
        "instructions": {"style": "calm", "target_duration": 20, "voiceover": {"text": "Hello"}},
    }


@pytest.fixture
def scripted():
    return ScriptedGenerator

