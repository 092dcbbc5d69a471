from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError, field_validator

from repo_snapshot.config import (
    DEFAULT_CONTEXT_LINES,
    DEFAULT_CONTEXT_WINDOWS,
    DEFAULT_ENCODING,
    DEFAULT_HEX_DUMP_BYTES,
)
from repo_snapshot.exceptions import ConfigError

if TYPE_CHECKING:
    from collections.abc import Mapping

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "REPO_SNAPSHOT_"
DEFAULT_CONFIG_NAME = ".repo-snapshot.yaml"


class Settings(BaseModel):
    """Configuration settings for the repo_snapshot module."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    repo: Path = Field(default_factory=Path.cwd, description="Repository root.")
    output: Path | None = Field(default=None, description="Output file; stdout when unset.")
    config: Path | None = Field(default=None, description="YAML configuration file.")
    log_file: str = Field(default="", description="Log file path.")

    git_from: str = Field(default="", description="Git revision to diff from.")
    git_to: str = Field(default="", description="Git revision to diff to, or to snapshot alone.")

    extensions: list[str] = Field(default_factory=list, description="Allowed file extensions.")
    excludes: list[str] = Field(default_factory=list, description="Exclude globs.")
    pattern: str = Field(default="", description="Regex selecting the lines to show.")
    context_lines: int = Field(
        default=DEFAULT_CONTEXT_LINES,
        ge=0,
        description="Lines of context around matches and diff changes.",
    )

    context_windows: list[PositiveInt] = Field(
        default_factory=lambda: list(DEFAULT_CONTEXT_WINDOWS),
        description="Context window sizes reported in the summary.",
    )
    encoding: str = Field(default=DEFAULT_ENCODING, description="tiktoken encoding name.")
    strip_comments: bool = Field(default=False, description="Remove source comments before rendering.")
    hex_dump_bytes: int = Field(
        default=DEFAULT_HEX_DUMP_BYTES,
        ge=0,
        description="Bytes shown in binary hex dumps (0 = all).",
    )
    no_git: bool = Field(default=False, description="Do not consult git ignore rules.")

    @field_validator("extensions", "excludes", "context_windows", mode="before")
    @classmethod
    def split_comma_lists(cls, value: Any) -> Any:  # noqa: ANN401
        """Accept `a,b` strings and lists whose items hold comma-separated values."""
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple)):
            out: list[Any] = []
            for item in value:
                if isinstance(item, str):
                    out.extend(part.strip() for part in item.split(",") if part.strip())
                else:
                    out.append(item)
            return out
        return value

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, value: list[str]) -> list[str]:
        """Lowercase extensions and drop leading dots."""
        return [e.lstrip(".").lower() for e in value if e.lstrip(".")]

    @property
    def is_diff(self) -> bool:
        """A `git_from` revision selects diff mode."""
        return bool(self.git_from)


def env_values(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect `REPO_SNAPSHOT_*` settings from a `.env` file and the environment.

    Process variables win over the `.env` file.
    """
    merged: dict[str, str | None] = dict(dotenv_values(ENV_FILE)) if ENV_FILE else {}
    merged.update(os.environ if environ is None else environ)
    out: dict[str, Any] = {}
    for key, value in merged.items():
        if value is None or not key.startswith(ENV_PREFIX):
            continue
        name = key.removeprefix(ENV_PREFIX).lower()
        if name in Settings.model_fields:
            out[name] = value
    return out


def read_config_file(path: Path) -> dict[str, Any]:
    """Load settings from a YAML mapping; `-` in keys is read as `_`.

    Raises:
        ConfigError: if the file cannot be read, is not YAML, or is not a mapping
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(source=str(path), reason=str(e)) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(source=str(path), reason="expected a mapping at the top level")
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def load_settings(
    overrides: Mapping[str, Any] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build settings from environment, config file, and explicit overrides.

    Later sources win: `REPO_SNAPSHOT_*` variables, then the YAML file named by
    `config` (or `<repo>/.repo-snapshot.yaml` when present), then `overrides`.

    Args:
        overrides (Mapping[str, Any] | None): values given explicitly, e.g. on the command line
        environ (Mapping[str, str] | None): environment to read instead of `os.environ`

    Raises:
        ConfigError: if a source cannot be read or the merged values are invalid

    Returns:
        Settings: the validated settings
    """
    explicit = dict(overrides or {})
    values = env_values(environ)

    config_path = explicit.get("config") or values.get("config")
    if config_path:
        values.update(read_config_file(Path(config_path)))
    else:
        repo = Path(explicit.get("repo") or values.get("repo") or Path.cwd())
        default_config = repo / DEFAULT_CONFIG_NAME
        if default_config.is_file():
            values.update(read_config_file(default_config))
            values["config"] = default_config

    values.update(explicit)
    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigError(source=str(config_path or "settings"), reason=str(e)) from e
