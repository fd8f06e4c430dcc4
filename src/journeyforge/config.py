"""Configuration loading for journeyforge.

Configuration lives in ``journeyforge.json`` or ``journeyforge.yaml`` at the
working directory root. Every section is optional; unknown keys are errors
so typos surface instead of silently falling back to defaults.
"""

import json
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from journeyforge.domain.exceptions import ConfigurationError

CONFIG_FILENAMES = ("journeyforge.json", "journeyforge.yaml", "journeyforge.yml")


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class MatcherConfig(_Section):
    kb_confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    confidence_policy: Literal["wilson", "stored"] = "wilson"


class CodegenConfig(_Section):
    tests_dir: str = "tests/journeys"


class RunnerConfig(_Section):
    timeout_s: float = Field(default=300.0, gt=0)
    base_url: str | None = None
    pytest_args: list[str] = Field(default_factory=list)


class HealingConfig(_Section):
    max_attempts: int = Field(default=3, ge=1)
    max_duration_s: float = Field(default=300.0, gt=0)
    max_cost: float = Field(default=50000.0, gt=0)
    default_timeout_ms: int = Field(default=10000, gt=0)
    max_timeout_ms: int = Field(default=60000, gt=0)


class PersistenceConfig(_Section):
    state_dir: str = ".journeyforge"
    lock_timeout_s: float = Field(default=10.0, ge=0)
    stale_after_s: float = Field(default=600.0, gt=0)


class KnowledgeConfig(_Section):
    export_path: str = ".journeyforge/kb-export.json"
    events_path: str = ".journeyforge/learning-events.jsonl"


class JourneyForgeConfig(_Section):
    """Top-level configuration. Relative paths resolve against the working directory."""

    journeys_dir: str = "journeys"
    log_file: str | None = None
    matcher: MatcherConfig = Field(default_factory=MatcherConfig)
    codegen: CodegenConfig = Field(default_factory=CodegenConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    healing: HealingConfig = Field(default_factory=HealingConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    knowledge: KnowledgeConfig = Field(default_factory=KnowledgeConfig)


def find_config(workdir: Path) -> Path | None:
    for name in CONFIG_FILENAMES:
        candidate = workdir / name
        if candidate.exists():
            return candidate
    return None


def load_config(path: Path | None = None, workdir: Path | None = None) -> JourneyForgeConfig:
    """
    Load configuration from an explicit path or the working directory.

    Args:
        path: Explicit config file (must exist)
        workdir: Directory searched for a default config file

    Returns:
        Validated configuration (defaults when no file is found)

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    if path is None:
        path = find_config(workdir or Path.cwd())
        if path is None:
            return JourneyForgeConfig()
    elif not path.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    data = _read(path)
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected mapping in {path}, got {type(data).__name__}")
    try:
        return JourneyForgeConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {path}: {e}") from e


def _read(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
    try:
        return yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
