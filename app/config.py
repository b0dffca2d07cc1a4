from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parents[1]
ENV_FILE = BASE_DIR / ".env"

DEFAULT_PROVIDER = "gemini"
DEFAULT_GEMINI_MODEL = "gemini-1.5-flash"
DEFAULT_OLLAMA_MODEL = "llama3.2"
DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"


def load_environment() -> None:
    """Load variables from the project .env, then from the working directory."""
    load_dotenv(ENV_FILE)
    load_dotenv()


def get_env_flag(name: str, default: bool = False) -> bool:
    """Read a boolean flag from environment variables."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def get_env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def get_env_float(name: str, default: Optional[float] = None) -> Optional[float]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


@dataclass
class RecoverySettings:
    max_attempts: int = 3
    timeout_seconds: Optional[float] = None
    normalizer_window: int = 6
    repair_max_iterations: int = 10
    save_raw_response: bool = True

    @classmethod
    def from_env(cls) -> "RecoverySettings":
        defaults = cls()
        return cls(
            max_attempts=get_env_int("PLAN_MAX_ATTEMPTS", defaults.max_attempts),
            timeout_seconds=get_env_float("PLAN_TIMEOUT_SECONDS", defaults.timeout_seconds),
            normalizer_window=get_env_int("PLAN_NORMALIZER_WINDOW", defaults.normalizer_window),
            repair_max_iterations=get_env_int(
                "PLAN_REPAIR_MAX_ITERATIONS", defaults.repair_max_iterations
            ),
            save_raw_response=get_env_flag("PLAN_SAVE_RAW_RESPONSE", defaults.save_raw_response),
        )


@dataclass
class ProviderSettings:
    provider: str = DEFAULT_PROVIDER
    model: Optional[str] = None
    api_key: Optional[str] = None
    base_url: str = DEFAULT_OLLAMA_BASE_URL
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    @classmethod
    def from_env(cls) -> "ProviderSettings":
        provider = os.getenv("LLM_PROVIDER", DEFAULT_PROVIDER).strip().lower()
        if provider == "gemini":
            model = os.getenv("GEMINI_MODEL") or os.getenv("LLM_MODEL") or DEFAULT_GEMINI_MODEL
        else:
            model = os.getenv("LLM_MODEL") or DEFAULT_OLLAMA_MODEL
        return cls(
            provider=provider,
            model=model,
            api_key=os.getenv("GEMINI_API_KEY"),
            base_url=os.getenv("OLLAMA_BASE_URL", DEFAULT_OLLAMA_BASE_URL),
            temperature=get_env_float("LLM_TEMPERATURE"),
            max_tokens=get_env_int("LLM_MAX_TOKENS"),
        )
