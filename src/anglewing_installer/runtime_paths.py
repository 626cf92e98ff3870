"""Helpers for locating the running executable and its frozen bundle roots."""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from pathlib import Path

from anglewing_installer.errors import PathResolutionError

EXECUTABLE_ENV = "ANGLEWING_EXECUTABLE"
BUNDLE_ROOT_ENV = "ANGLEWING_BUNDLE_ROOT"


def is_frozen() -> bool:
    return bool(getattr(sys, "frozen", False))


def current_executable(environ: Mapping[str, str] | None = None) -> Path:
    """Return the absolute path of the running application executable.

    Symlinks are not resolved here; callers decide when the real path matters.
    """

    env = os.environ if environ is None else environ
    override = env.get(EXECUTABLE_ENV)
    if override:
        return Path(override).absolute()

    if is_frozen():
        executable = getattr(sys, "executable", None)
        if executable:
            return Path(executable).absolute()
        raise PathResolutionError(
            "Unable to determine the executable path: sys.executable is empty in a frozen build."
        )

    argv0 = sys.argv[0] if sys.argv else ""
    if argv0 and argv0 != "-c":
        return Path(argv0).absolute()

    raise PathResolutionError(
        "Unable to determine the executable path. "
        f"Set {EXECUTABLE_ENV} or run from a frozen build."
    )


def bundle_roots(environ: Mapping[str, str] | None = None) -> list[Path]:
    """Return the directories a frozen build unpacks its data files into."""

    env = os.environ if environ is None else environ
    roots: list[Path] = []

    env_root = env.get(BUNDLE_ROOT_ENV)
    if env_root:
        roots.append(Path(env_root))

    meipass = getattr(sys, "_MEIPASS", None)
    if meipass:
        roots.append(Path(meipass))

    if is_frozen():
        executable = getattr(sys, "executable", None)
        if executable:
            roots.append(Path(executable).resolve().parent)

    deduped: list[Path] = []
    seen: set[Path] = set()
    for root in roots:
        resolved = root.resolve()
        if resolved not in seen:
            seen.add(resolved)
            deduped.append(resolved)
    return deduped


def find_embedded_resource_dir(
    resource_dir_name: str, environ: Mapping[str, str] | None = None
) -> Path | None:
    """Return the first bundle root carrying a ``resource_dir_name`` directory."""

    for root in bundle_roots(environ):
        candidate = root / resource_dir_name
        try:
            if candidate.is_dir():
                return candidate
        except OSError:
            continue
    return None
