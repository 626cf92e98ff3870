"""Installer configuration models and loaders."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

DEFAULT_APP_NAME = "Anglewing"
DEFAULT_RESOURCE_DIR_NAME = "public"
DEFAULT_MARKER_FILENAME = ".anglewing_configured"


class InstallerConfig(BaseModel):
    """Configuration for resource location and first-run relocation.

    The defaults describe the shipped Anglewing layout: a ``public`` resource
    directory holding ``animations`` and ``backgrounds``, relocated on first
    run to the platform's canonical install root.
    """

    model_config = ConfigDict(extra="forbid")

    app_name: str = DEFAULT_APP_NAME
    resource_dir_name: str = DEFAULT_RESOURCE_DIR_NAME
    required_subdirs: list[str] = Field(default_factory=lambda: ["animations", "backgrounds"])
    required_files: list[str] = Field(default_factory=list)
    non_empty_subdirs: list[str] = Field(default_factory=list)
    marker_filename: str = DEFAULT_MARKER_FILENAME
    relocation_enabled: bool = True
    relaunch_delay_seconds: int = Field(default=2, ge=0)
    install_desktop_entry: bool = True
    canonical_root: Path | None = None
    ancestor_search_depth: int = Field(default=5, ge=1, le=10)
    log_level: str = "INFO"
    log_file: Path | None = None

    @field_validator("app_name", "resource_dir_name", "marker_filename")
    @classmethod
    def _validate_plain_name(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("Value must not be empty")
        if "/" in text or "\\" in text or text in {".", ".."}:
            raise ValueError("Value must be a single path component")
        return text

    @field_validator("required_subdirs", "required_files", "non_empty_subdirs")
    @classmethod
    def _validate_child_names(cls, value: list[str]) -> list[str]:
        names: list[str] = []
        for item in value:
            text = item.strip()
            if not text or text in {".", ".."} or "\\" in text or text.startswith("/"):
                raise ValueError(f"Invalid bundle entry name: {item!r}")
            if text not in names:
                names.append(text)
        return names

    @model_validator(mode="after")
    def _validate_non_empty_subset(self) -> InstallerConfig:
        unknown = [name for name in self.non_empty_subdirs if name not in self.required_subdirs]
        if unknown:
            raise ValueError(
                "non_empty_subdirs must also be listed in required_subdirs: " + ", ".join(unknown)
            )
        return self


def _format_validation_error(error: ValidationError) -> str:
    lines = ["Configuration validation failed:"]
    for issue in error.errors():
        location = ".".join(str(part) for part in issue.get("loc", ()))
        message = issue.get("msg", "Invalid value")
        lines.append(f"- {location or '<root>'}: {message}")
    return "\n".join(lines)


def load_config(path: str | Path) -> InstallerConfig:
    """Load a YAML installer configuration file from disk."""

    config_path = Path(path)
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ValueError(f"Unable to read config file '{config_path}': {exc}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in config file '{config_path}': {exc}") from exc

    data: Any = raw if raw is not None else {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Configuration file '{config_path}' must contain a top-level mapping/object."
        )

    try:
        return InstallerConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(_format_validation_error(exc)) from exc
