"""Error types raised by the installer components."""

from __future__ import annotations

from pathlib import Path


class InstallerError(RuntimeError):
    """Base error carrying a human-readable message and the offending path."""

    def __init__(self, message: str, *, path: str | Path | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = Path(path) if path is not None else None

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.message} (path: {self.path})"


class PathResolutionError(InstallerError):
    """Raised when the executable or resource directory cannot be determined."""


class MaterializationError(InstallerError):
    """Raised when a resource bundle cannot be created or populated."""


class RelocationError(InstallerError):
    """Raised when a migration script cannot be generated, written or spawned."""
