"""Runtime settings read from the environment (and the project-root .env)."""

from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from insight_core.numerical_claims import DEFAULT_TOLERANCE
from insight_core.creator_score import VOL_NORM

_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(_ROOT, ".env"))

DEFAULT_MODEL = "claude-sonnet-4-20250514"


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    anthropic_api_key: Optional[str] = None
    default_model: str = DEFAULT_MODEL
    max_repairs: int = 2
    contradiction_tolerance: float = DEFAULT_TOLERANCE
    log_level: str = "INFO"
    creator_vol_norm: float = VOL_NORM

    @property
    def llm_enabled(self) -> bool:
        return bool(self.anthropic_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            default_model=os.getenv("DEFAULT_MODEL", DEFAULT_MODEL),
            max_repairs=max(0, _int_env("MAX_REPAIRS", 2)),
            contradiction_tolerance=_float_env("CONTRADICTION_TOLERANCE", DEFAULT_TOLERANCE),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            creator_vol_norm=_float_env("CREATOR_VOL_NORM", VOL_NORM),
        )


def get_settings() -> Settings:
    """Fresh read each call so tests can monkeypatch the environment."""
    return Settings.from_env()
