"""
Runner configuration.

Defaults can be overridden by a YAML file validated with Pydantic, and the
CLI overrides both.

Example file::

    delimiter: "::"
    max_stages: 16
    launcher: spawn
    abort_policy: reap
    output: jsonl
    log_level: INFO
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigFileError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "RUNPIPE_CONFIG"

DEFAULT_DELIMITER = "--"
DEFAULT_MAX_STAGES = 10


@dataclass(frozen=True)
class RunnerConfig:
    """Settings for a pipeline run.

    Attributes:
        delimiter: Token separating stages
        max_stages: Maximum number of stages accepted by the parser
        launcher: Launch strategy name ("fork" or "spawn")
        abort_policy: What to do with launched stages when the pipeline is
            aborted ("terminate", "reap" or "orphan")
        output: Diagnostic format ("text" or "jsonl")
        log_level: Logging level name for the CLI
    """
    delimiter: str = DEFAULT_DELIMITER
    max_stages: int = DEFAULT_MAX_STAGES
    launcher: str = "fork"
    abort_policy: str = "terminate"
    output: str = "text"
    log_level: str = "WARNING"

    def merge(self, **overrides: Any) -> "RunnerConfig":
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        changes = {k: v for k, v in overrides.items() if v is not None and k in known}
        return replace(self, **changes)


# ---------------------------------------------------------------------------
# Pydantic Schema
# ---------------------------------------------------------------------------


class RunnerSchema(BaseModel):
    """Schema for a runner configuration file."""

    model_config = ConfigDict(extra="forbid")

    delimiter: str = DEFAULT_DELIMITER
    max_stages: int = Field(default=DEFAULT_MAX_STAGES, ge=1)
    launcher: Literal["fork", "spawn"] = "fork"
    abort_policy: Literal["terminate", "reap", "orphan"] = "terminate"
    output: Literal["text", "jsonl"] = "text"
    log_level: str = "WARNING"

    @field_validator("delimiter")
    @classmethod
    def validate_delimiter(cls, v: str) -> str:
        """Validate delimiter is a non-blank single token."""
        if not v.strip() or v != v.strip():
            raise ValueError("Delimiter must be a non-empty token without surrounding whitespace")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    def to_config(self) -> RunnerConfig:
        return RunnerConfig(**self.model_dump())


def load_config(path: str | Path | None = None) -> RunnerConfig:
    """Load runner configuration.

    Uses ``path`` if given, else the file named by ``RUNPIPE_CONFIG``, else
    the defaults.

    Args:
        path: Optional path to a YAML configuration file

    Returns:
        RunnerConfig instance

    Raises:
        ConfigFileError: If the file is missing, not valid YAML, or fails
            schema validation.
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR) or None
    if path is None:
        return RunnerConfig()

    config_path = Path(path).expanduser()
    if not config_path.is_file():
        raise ConfigFileError(f"Config file not found: {config_path}")

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigFileError(f"Invalid YAML in {config_path}: {e}", cause=e) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigFileError(f"Config file must contain a mapping: {config_path}")

    try:
        schema = RunnerSchema.model_validate(data)
    except ValidationError as e:
        raise ConfigFileError(f"Invalid config {config_path}: {e}", cause=e) from e

    logger.debug("Loaded config from %s", config_path)
    return schema.to_config()
