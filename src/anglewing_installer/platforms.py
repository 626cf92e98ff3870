"""Per-platform install locations, permission model and script flavour."""

from __future__ import annotations

import os
import platform
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import ClassVar

from anglewing_installer.config import InstallerConfig

UP_DIR_NAME = "_up_"


class PermissionModel(StrEnum):
    POSIX = "posix"
    NONE = "none"


class ScriptSyntax(StrEnum):
    SH = "sh"
    BATCH = "batch"


@dataclass(frozen=True)
class DesktopEntry:
    """A desktop-integration file and where it gets installed."""

    destination: Path
    content: str


def _desktop_exec_quote(value: str) -> str:
    escaped = value
    for char in ("\\", '"', "`", "$"):
        escaped = escaped.replace(char, "\\" + char)
    return f'"{escaped}"'


@dataclass(frozen=True, eq=False)
class PlatformPolicy(ABC):
    """Capabilities the resolver, materializer and orchestrator are parameterized by.

    Every location is derived from ``environ`` and ``home`` so the same inputs
    always produce the same paths; unset variables fall back to hardcoded
    defaults.
    """

    app_name: str
    environ: Mapping[str, str] = field(default_factory=dict)
    home: Path = field(default_factory=Path.home)
    canonical_root_override: Path | None = None

    name: ClassVar[str] = "generic"
    permission_model: ClassVar[PermissionModel] = PermissionModel.POSIX
    script_syntax: ClassVar[ScriptSyntax] = ScriptSyntax.SH
    script_suffix: ClassVar[str] = ".sh"

    def _env_path(self, key: str, fallback: Path) -> Path:
        value = self.environ.get(key, "").strip()
        return Path(value) if value else fallback

    def canonical_install_root(self) -> Path:
        if self.canonical_root_override is not None:
            return self.canonical_root_override
        return self._default_canonical_root()

    @abstractmethod
    def _default_canonical_root(self) -> Path:
        """Canonical install root used when no override is configured."""

    def standard_install_dirs(self) -> list[Path]:
        return []

    def user_data_dirs(self) -> list[Path]:
        return []

    def resource_layouts(self, resource_dir_name: str) -> tuple[str, ...]:
        return (resource_dir_name, f"{UP_DIR_NAME}/{resource_dir_name}")

    def app_unit(self, executable: Path) -> Path:
        """Return the file or directory tree that relocation moves."""

        return executable

    def embedded_resource_dir(self, app_unit: Path, resource_dir_name: str) -> Path | None:
        return None

    def relaunch_command(self, executable: Path, app_unit: Path) -> list[str]:
        return [str(executable)]

    def desktop_entry(self, executable: Path) -> DesktopEntry | None:
        return None


@dataclass(frozen=True, eq=False)
class MacOSPolicy(PlatformPolicy):
    name: ClassVar[str] = "macos"

    def _default_canonical_root(self) -> Path:
        return Path("/Applications") / self.app_name

    def standard_install_dirs(self) -> list[Path]:
        return [Path("/Applications") / self.app_name]

    def user_data_dirs(self) -> list[Path]:
        return [self.home / "Library" / "Application Support" / self.app_name]

    def resource_layouts(self, resource_dir_name: str) -> tuple[str, ...]:
        return (resource_dir_name,)

    def app_unit(self, executable: Path) -> Path:
        # <Name>.app/Contents/MacOS/<binary>
        parents = executable.parents
        if (
            len(parents) >= 3
            and parents[0].name == "MacOS"
            and parents[1].name == "Contents"
            and parents[2].suffix == ".app"
        ):
            return parents[2]
        return executable

    def embedded_resource_dir(self, app_unit: Path, resource_dir_name: str) -> Path | None:
        if app_unit.suffix != ".app":
            return None
        return app_unit / "Contents" / "Resources" / resource_dir_name

    def relaunch_command(self, executable: Path, app_unit: Path) -> list[str]:
        if app_unit.suffix == ".app":
            return ["open", str(app_unit)]
        return [str(executable)]


@dataclass(frozen=True, eq=False)
class LinuxPolicy(PlatformPolicy):
    name: ClassVar[str] = "linux"

    def _data_home(self) -> Path:
        return self._env_path("XDG_DATA_HOME", self.home / ".local" / "share")

    def _default_canonical_root(self) -> Path:
        return self._data_home() / self.app_name

    def standard_install_dirs(self) -> list[Path]:
        return [Path("/opt") / self.app_name, Path("/usr/lib") / self.app_name]

    def user_data_dirs(self) -> list[Path]:
        return [self._data_home() / self.app_name]

    def relaunch_command(self, executable: Path, app_unit: Path) -> list[str]:
        return ["nohup", str(executable)]

    def desktop_entry(self, executable: Path) -> DesktopEntry | None:
        slug = self.app_name.lower().replace(" ", "-")
        destination = self._data_home() / "applications" / f"{slug}.desktop"
        content = "\n".join(
            [
                "[Desktop Entry]",
                "Type=Application",
                f"Name={self.app_name}",
                f"Exec={_desktop_exec_quote(str(executable))}",
                f"Path={executable.parent}",
                "Terminal=false",
                "Categories=Utility;",
            ]
        )
        return DesktopEntry(destination=destination, content=content + "\n")


@dataclass(frozen=True, eq=False)
class WindowsPolicy(PlatformPolicy):
    name: ClassVar[str] = "windows"
    permission_model: ClassVar[PermissionModel] = PermissionModel.NONE
    script_syntax: ClassVar[ScriptSyntax] = ScriptSyntax.BATCH
    script_suffix: ClassVar[str] = ".cmd"

    def _local_app_data(self) -> Path:
        return self._env_path("LOCALAPPDATA", self.home / "AppData" / "Local")

    def _roaming_app_data(self) -> Path:
        return self._env_path("APPDATA", self.home / "AppData" / "Roaming")

    def _default_canonical_root(self) -> Path:
        return self._local_app_data() / "Programs" / self.app_name

    def standard_install_dirs(self) -> list[Path]:
        program_files = self._env_path("ProgramFiles", Path("C:\\Program Files"))
        program_files_x86 = self._env_path("ProgramFiles(x86)", Path("C:\\Program Files (x86)"))
        return [program_files / self.app_name, program_files_x86 / self.app_name]

    def user_data_dirs(self) -> list[Path]:
        return [self._roaming_app_data() / self.app_name]

    def resource_layouts(self, resource_dir_name: str) -> tuple[str, ...]:
        # The installer places resources in _up_ next to the executable.
        return (f"{UP_DIR_NAME}/{resource_dir_name}", resource_dir_name)

    def relaunch_command(self, executable: Path, app_unit: Path) -> list[str]:
        return ["start", "", str(executable)]

    def desktop_entry(self, executable: Path) -> DesktopEntry | None:
        programs = (
            self._roaming_app_data() / "Microsoft" / "Windows" / "Start Menu" / "Programs"
        )
        content = "\r\n".join(
            [
                "@echo off",
                f'cd /d "{executable.parent}"',
                f'start "" "{executable}"',
            ]
        )
        return DesktopEntry(destination=programs / f"{self.app_name}.cmd", content=content + "\r\n")


_POLICIES: dict[str, type[PlatformPolicy]] = {
    "Darwin": MacOSPolicy,
    "Linux": LinuxPolicy,
    "Windows": WindowsPolicy,
}


def detect_policy(
    config: InstallerConfig,
    *,
    system: str | None = None,
    environ: Mapping[str, str] | None = None,
    home: Path | None = None,
) -> PlatformPolicy:
    """Build the policy for ``system`` (defaults to the running OS).

    Unknown systems get the Linux policy since it only relies on POSIX paths.
    """

    policy_cls = _POLICIES.get(system or platform.system(), LinuxPolicy)
    return policy_cls(
        app_name=config.app_name,
        environ=dict(os.environ if environ is None else environ),
        home=home if home is not None else Path.home(),
        canonical_root_override=config.canonical_root,
    )
