"""Structural contract of a valid resource bundle directory."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from anglewing_installer.config import InstallerConfig


@dataclass(frozen=True)
class ResourceBundleSpec:
    """Required children of a resource directory.

    Subdirectories only need content when listed in ``non_empty_subdirs``.
    """

    required_subdirs: tuple[str, ...] = ("animations", "backgrounds")
    required_files: tuple[str, ...] = ()
    non_empty_subdirs: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, config: InstallerConfig) -> ResourceBundleSpec:
        return cls(
            required_subdirs=tuple(config.required_subdirs),
            required_files=tuple(config.required_files),
            non_empty_subdirs=tuple(config.non_empty_subdirs),
        )

    def missing_entries(self, directory: Path) -> list[str]:
        """List the required children absent from ``directory``.

        Raises ``OSError`` when the directory cannot be inspected.
        """

        missing: list[str] = []
        for name in self.required_subdirs:
            child = directory / name
            if not child.is_dir():
                missing.append(name)
            elif name in self.non_empty_subdirs and not any(child.iterdir()):
                missing.append(name)
        for name in self.required_files:
            if not (directory / name).is_file():
                missing.append(name)
        return missing

    def is_satisfied_by(self, directory: Path) -> bool:
        try:
            if not directory.is_dir():
                return False
            return not self.missing_entries(directory)
        except OSError:
            return False


DEFAULT_BUNDLE_SPEC = ResourceBundleSpec()


def relative_files(root: Path) -> set[Path]:
    """Return every regular file below ``root`` as a path relative to it."""

    return {path.relative_to(root) for path in root.rglob("*") if path.is_file()}


def is_complete(directory: Path, spec: ResourceBundleSpec, source: Path | None = None) -> bool:
    """Check the bundle shape and, when a source is given, that no source file is missing."""

    if not spec.is_satisfied_by(directory):
        return False
    if source is None:
        return True
    try:
        return relative_files(source) <= relative_files(directory)
    except OSError:
        return False
