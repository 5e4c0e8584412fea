"""Explicit engine configuration.

Components receive a :class:`Settings` instance at construction time and never
read the process environment themselves. :func:`load_settings` is the single
place where a YAML file and ``SCM_*`` environment variables are consulted, and
only the CLI entry point calls it.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field

DATA_DIR = Path(__file__).parent / "data"

ENV_PREFIX = "SCM_"


class Settings(BaseModel):
    # Text generation
    llm_provider: Literal["anthropic", "openai", "openai_compatible"] = "openai"
    llm_model: str = ""
    generation_api_key: str | None = None
    llm_base_url: str | None = None
    generation_timeout_seconds: float = 60.0
    narrative_max_tokens: int = 3000
    narrative_temperature: float = 0.4
    roadmap_max_tokens: int = 4000
    roadmap_temperature: float = 0.4
    feedback_max_tokens: int = 300
    feedback_temperature: float = 0.7
    serialize_generation: bool = True

    # Benchmarking
    min_cohort_support: int = Field(default=5, ge=1)
    sufficiency_size: int = Field(default=10, ge=1)

    # Scoring
    answer_policy: Literal["strict", "clamp"] = "strict"

    # Storage
    database_path: Path = Field(default_factory=lambda: DATA_DIR / "maturity.db")

    log_level: str = "WARNING"

    @property
    def generation_enabled(self) -> bool:
        return bool(self.generation_api_key)


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        return {}
    return data


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name in Settings.model_fields:
        raw = environ.get(ENV_PREFIX + name.upper(), "").strip()
        if raw:
            out[name] = raw
    return out


def load_settings(
    config_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> Settings:
    """Build settings from (lowest to highest precedence) defaults, a YAML file,
    ``SCM_*`` environment variables and keyword overrides."""
    values: dict[str, Any] = {}
    if config_file is not None:
        values.update(_load_yaml(Path(config_file)))
    values.update(_env_overrides(os.environ if environ is None else environ))
    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings.model_validate(values)
