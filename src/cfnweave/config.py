"""
Compiler configuration models.

Configuration is loaded from ``cfnweave.toml``::

    [embed]
    api_root = "api"

    [alarms]
    name_prefix = "prod-"
    topic_parameter = "AlarmTopicArn"

    [output]
    directory = "out/deployments"
    format = "yaml"

    [run]
    workers = 4
"""

from __future__ import annotations

import tomllib
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .core.errors import from_pydantic_error, make_parse_error
from .embed.embedder import DEFAULT_DEFINITION_PROPERTIES

CONFIG_FILE = "cfnweave.toml"


class OutputFormat(StrEnum):
    """Serialization format for generated documents."""

    YAML = "yaml"
    JSON = "json"

    @property
    def suffix(self) -> str:
        return ".json" if self is OutputFormat.JSON else ".yml"


class TreatMissingData(StrEnum):
    """CloudWatch handling of missing data points."""

    BREACHING = "breaching"
    NOT_BREACHING = "notBreaching"
    IGNORE = "ignore"
    MISSING = "missing"


# =============================================================================
# Sub-configuration Models
# =============================================================================


class EmbedConfig(BaseModel):
    """API definition embedding."""

    model_config = ConfigDict(extra="forbid")

    api_root: str | None = None
    output_prefix: str = "embedded."
    definition_properties: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_DEFINITION_PROPERTIES)
    )
    validate_intrinsics: bool = True

    def get_api_root(self, project_root: Path) -> Path | None:
        """Get the absolute API root, if one is configured."""
        if self.api_root is None:
            return None
        return project_root / self.api_root


class AlarmConfig(BaseModel):
    """Alarm generation."""

    model_config = ConfigDict(extra="forbid")

    name_prefix: str = ""
    topic_parameter: str | None = "AlarmTopicArn"
    treat_missing_data: TreatMissingData | None = None
    description: str = "{metric} {comparison} {threshold} for {template}"

    @field_validator("topic_parameter")
    @classmethod
    def _empty_disables_topic(cls, value: str | None) -> str | None:
        return value or None


class OutputConfig(BaseModel):
    """Output configuration."""

    model_config = ConfigDict(extra="forbid")

    directory: str = "out/deployments"
    format: OutputFormat = OutputFormat.YAML

    def get_output_path(self, project_root: Path) -> Path:
        """Get the absolute output path."""
        return project_root / self.directory


class RunConfig(BaseModel):
    """Batch execution."""

    model_config = ConfigDict(extra="forbid")

    workers: int = Field(default=1, ge=1, le=64)
    best_effort: bool = False


# =============================================================================
# Main Configuration Model
# =============================================================================


class CompilerConfig(BaseModel):
    """Complete compiler configuration."""

    embed: EmbedConfig = Field(default_factory=EmbedConfig)
    alarms: AlarmConfig = Field(default_factory=AlarmConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    run: RunConfig = Field(default_factory=RunConfig)


# =============================================================================
# Configuration Loading
# =============================================================================


def load_compiler_config(toml_path: Path) -> CompilerConfig:
    """
    Load compiler configuration from cfnweave.toml.

    Args:
        toml_path: Path to cfnweave.toml file

    Returns:
        CompilerConfig with values from file, or defaults if it is missing

    Raises:
        ParseError: If the file is not valid TOML
        ValidationError: If a value is invalid
    """
    if not toml_path.exists():
        return CompilerConfig()

    try:
        with open(toml_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise make_parse_error(f"invalid TOML: {exc}", toml_path) from exc
    except UnicodeDecodeError as exc:
        raise make_parse_error(f"config is not valid UTF-8: {exc.reason}", toml_path) from exc

    return _parse_config(data, toml_path)


def _parse_config(data: dict[str, Any], source: Path | None = None) -> CompilerConfig:
    """Parse config dict into CompilerConfig."""
    config_data: dict[str, Any] = {}
    for section in ("embed", "alarms", "output", "run"):
        if section in data:
            config_data[section] = data[section]

    try:
        return CompilerConfig.model_validate(config_data)
    except PydanticValidationError as exc:
        raise from_pydantic_error(exc, source) from exc
