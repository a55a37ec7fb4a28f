from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from gimtex.config import DEFAULT_MAX_BYTES, OutputProtocol, SelectionMode
from gimtex.exceptions import InvalidConfigError
from gimtex.tokens import DEFAULT_ENCODING, TokenThresholds

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "GIMTEX_"
CONFIG_FILE_NAMES = (".gimtex.yaml", ".gimtex.yml")

# Keys accepted in the YAML config file and their Settings field names.
CONFIG_KEYS: dict[str, str] = {
    "ignore": "ignore",
    "filter": "filters",
    "filters": "filters",
    "max_bytes": "max_bytes",
    "format": "format",
    "line_numbers": "line_numbers",
    "thresholds": "thresholds",
    "workers": "workers",
    "encoding": "encoding",
}

ENV_KEYS: dict[str, str] = {
    "MAX_BYTES": "max_bytes",
    "FORMAT": "format",
    "LINE_NUMBERS": "line_numbers",
    "WORKERS": "workers",
    "ENCODING": "encoding",
}

_LIST_FIELDS = frozenset({"ignore", "filters"})


class Settings(BaseModel):
    """Configuration settings for one pipeline run."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    repo: Path = Field(default_factory=Path.cwd, description="Repository root.")
    output: Path | None = Field(default=None, description="Output file; stdout when unset.")
    format: OutputProtocol = Field(default=OutputProtocol.MARKDOWN, description="Output protocol.")
    filters: list[str] = Field(default_factory=list, description="Inclusion globs.")
    ignore: list[str] = Field(default_factory=list, description="Extra exclusion globs.")
    diff: bool = Field(default=False, description="Only staged/modified files.")
    interactive: bool = Field(default=False, description="Pick files interactively.")
    line_numbers: bool = Field(default=False, description="Prefix content lines with numbers.")
    max_bytes: int = Field(default=DEFAULT_MAX_BYTES, gt=0, description="Size ceiling per file.")
    thresholds: TokenThresholds = Field(default_factory=TokenThresholds)
    workers: int | None = Field(default=None, gt=0, description="Worker pool size.")
    encoding: str = Field(default=DEFAULT_ENCODING, description="tiktoken encoding name.")
    log_file: str = Field(default="", description="Log file path.")
    verbose: bool = Field(default=False, description="Debug logging.")

    @model_validator(mode="after")
    def _check_modes(self) -> Settings:
        if self.diff and self.interactive:
            msg = "diff and interactive selection are mutually exclusive"
            raise ValueError(msg)
        return self

    @property
    def mode(self) -> SelectionMode:
        if self.diff:
            return SelectionMode.DIFF
        if self.interactive:
            return SelectionMode.INTERACTIVE
        return SelectionMode.TREE


def find_config_file(repo: Path) -> Path | None:
    """Return the first `.gimtex.yaml` / `.gimtex.yml` found in `repo`, if any."""
    for name in CONFIG_FILE_NAMES:
        candidate = repo / name
        if candidate.is_file():
            return candidate
    return None


def _glob_list(value: Any, *, key: str, path: Path) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return value
    raise InvalidConfigError(
        source=str(path),
        message=f"{key!r} must be a glob or a list of globs, not {type(value).__name__}",
    )


def load_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML config file and map its keys onto Settings field names.

    Args:
        path (Path): config file to read.

    Raises:
        InvalidConfigError: if the file is not a mapping, cannot be parsed, or
            holds unknown keys or a glob option that is neither a string nor a list.

    Returns:
        dict[str, Any]: Settings field values.
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise InvalidConfigError(source=str(path), message=str(e)) from e
    if not isinstance(data, dict):
        raise InvalidConfigError(source=str(path), message="top level must be a mapping")

    unknown = sorted(str(k) for k in data if k not in CONFIG_KEYS)
    if unknown:
        raise InvalidConfigError(source=str(path), message=f"unknown keys {unknown}")

    out: dict[str, Any] = {}
    for key, value in data.items():
        field = CONFIG_KEYS[key]
        if field in _LIST_FIELDS:
            value = _glob_list(value, key=key, path=path)  # noqa: PLW2901
        if field in _LIST_FIELDS and field in out:
            out[field] = [*out[field], *value]
        else:
            out[field] = value
    return out


def env_overrides(env_file: str | None = None) -> dict[str, Any]:
    """Collect `GIMTEX_*` values from a `.env` file and the process environment.

    The process environment wins over the `.env` file.

    Args:
        env_file (str | None): `.env` path; defaults to the one found from the cwd.

    Returns:
        dict[str, Any]: Settings field values (raw strings, validated later).
    """
    path = ENV_FILE if env_file is None else env_file
    merged: dict[str, str | None] = dict(dotenv_values(path)) if path else {}
    merged.update({k: v for k, v in os.environ.items() if k.startswith(ENV_PREFIX)})

    out: dict[str, Any] = {}
    for key, value in merged.items():
        if not key.startswith(ENV_PREFIX) or value is None:
            continue
        field = ENV_KEYS.get(key.removeprefix(ENV_PREFIX))
        if field:
            out[field] = value
    return out


def build_settings(
    cli_values: dict[str, Any],
    *,
    config_path: Path | None = None,
    env_file: str | None = None,
) -> Settings:
    """Merge defaults, config file, environment and CLI values into Settings.

    Precedence grows in that order. List options (`ignore`, `filters`) are
    concatenated across sources, `thresholds` are merged key by key. CLI values
    that are None are treated as "not given".

    Args:
        cli_values (dict[str, Any]): values parsed from the command line.
        config_path (Path | None): explicit config file; otherwise looked up in the repo.
        env_file (str | None): `.env` file override.

    Raises:
        InvalidConfigError: if any source holds invalid values.

    Returns:
        Settings: the validated settings.
    """
    given = {k: v for k, v in cli_values.items() if v is not None}
    repo = Path(given.get("repo") or Path.cwd())
    path = config_path or find_config_file(repo)
    sources: list[tuple[str, dict[str, Any]]] = []
    if path is not None:
        sources.append((str(path), load_config_file(path)))
    sources.append(("environment", env_overrides(env_file)))
    sources.append(("command line", given))

    merged: dict[str, Any] = {}
    origins: dict[str, str] = {}
    for name, values in sources:
        for key, value in values.items():
            origins[key] = name
            if key in _LIST_FIELDS:
                merged[key] = [*merged.get(key, []), *value]
            elif key == "thresholds" and isinstance(value, dict):
                merged[key] = {**merged.get(key, {}), **value}
            else:
                merged[key] = value

    try:
        return Settings(**merged)
    except ValidationError as e:
        loc = e.errors()[0]["loc"] if e.errors() else ()
        origin = origins.get(str(loc[0]), "defaults") if loc else "command line"
        raise InvalidConfigError(source=origin, message=str(e)) from e
