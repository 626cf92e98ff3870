"""Relocation plans and the detached scripts that carry them out.

A running executable cannot replace its own file, so relocation is written
down as a :class:`MigrationPlan`, rendered to a platform-native script and
handed to an independent process that outlives the current one. Every path
the script touches is baked in at generation time.
"""

from __future__ import annotations

import json
import logging
import os
import shlex
import subprocess
import tempfile
from collections.abc import Sequence
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from anglewing_installer.errors import RelocationError
from anglewing_installer.logging import resolve_logger
from anglewing_installer.platforms import PermissionModel, PlatformPolicy, ScriptSyntax

LOGGER = logging.getLogger(__name__)

SCRIPT_BASENAME = "install_script"
PLAN_FILENAME = "plan.json"
POSIX_PERMISSIONS = "u+rwX,go+rX,go-w"


@dataclass(frozen=True)
class MigrationPlan:
    """Everything the detached relocation step needs, as plain data."""

    source: Path
    target: Path
    source_is_dir: bool
    executable: Path
    executable_after_move: Path
    resource_dir: Path
    required_subdirs: tuple[str, ...]
    embedded_resource_dir: Path | None
    embedded_resource_dir_after_move: Path | None
    relaunch_after_move: tuple[str, ...]
    relaunch_fallback: tuple[str, ...]
    desktop_entry_staged: Path | None
    desktop_entry_destination: Path | None
    desktop_entry_content: str | None
    delay_seconds: int
    permission_model: PermissionModel
    syntax: ScriptSyntax
    workdir: Path

    @property
    def script_path(self) -> Path:
        suffix = ".cmd" if self.syntax is ScriptSyntax.BATCH else ".sh"
        return self.workdir / f"{SCRIPT_BASENAME}{suffix}"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for key, value in asdict(self).items():
            if isinstance(value, Path):
                payload[key] = str(value)
            elif isinstance(value, tuple):
                payload[key] = list(value)
            else:
                payload[key] = value
        return payload


def _rebase(path: Path, old_root: Path, new_root: Path) -> Path:
    if path == old_root:
        return new_root
    if path.is_relative_to(old_root):
        return new_root / path.relative_to(old_root)
    return path


def create_workdir(app_name: str) -> Path:
    """Create a private temporary directory for one relocation attempt."""

    slug = app_name.lower().replace(" ", "-")
    try:
        return Path(tempfile.mkdtemp(prefix=f"{slug}-relocate-"))
    except OSError as exc:
        raise RelocationError(f"Failed to create relocation work directory: {exc}") from exc


def build_migration_plan(
    *,
    policy: PlatformPolicy,
    executable: Path,
    resource_dir: Path,
    required_subdirs: Sequence[str],
    embedded_resource_dir: Path | None,
    workdir: Path,
    delay_seconds: int = 2,
    install_desktop_entry: bool = True,
) -> MigrationPlan:
    """Plan moving the app unit holding ``executable`` into the canonical root."""

    app_unit = policy.app_unit(executable)
    canonical_root = policy.canonical_install_root()
    target = canonical_root / app_unit.name
    if target == app_unit:
        raise RelocationError("Application already runs from its install location", path=app_unit)
    if not app_unit.exists():
        raise RelocationError("Application files to relocate do not exist", path=app_unit)

    executable_after_move = _rebase(executable, app_unit, target)
    embedded_after_move = (
        _rebase(embedded_resource_dir, app_unit, target)
        if embedded_resource_dir is not None
        else None
    )

    desktop_entry = policy.desktop_entry(executable_after_move) if install_desktop_entry else None
    return MigrationPlan(
        source=app_unit,
        target=target,
        source_is_dir=app_unit.is_dir(),
        executable=executable,
        executable_after_move=executable_after_move,
        resource_dir=resource_dir,
        required_subdirs=tuple(required_subdirs),
        embedded_resource_dir=embedded_resource_dir,
        embedded_resource_dir_after_move=embedded_after_move,
        relaunch_after_move=tuple(policy.relaunch_command(executable_after_move, target)),
        relaunch_fallback=tuple(policy.relaunch_command(executable, app_unit)),
        desktop_entry_staged=(
            workdir / desktop_entry.destination.name if desktop_entry is not None else None
        ),
        desktop_entry_destination=(
            desktop_entry.destination if desktop_entry is not None else None
        ),
        desktop_entry_content=desktop_entry.content if desktop_entry is not None else None,
        delay_seconds=delay_seconds,
        permission_model=policy.permission_model,
        syntax=policy.script_syntax,
        workdir=workdir,
    )


def _sh(value: Path | str) -> str:
    return shlex.quote(str(value))


def render_sh_script(plan: MigrationPlan) -> str:
    """Render ``plan`` as a POSIX shell script."""

    lines = [
        "#!/bin/sh",
        "# Relocates the application once the launching process has exited.",
        "# Every step is best effort; a relaunch is always attempted.",
        f"SOURCE={_sh(plan.source)}",
        f"TARGET={_sh(plan.target)}",
        f"RESOURCES={_sh(plan.resource_dir)}",
        f"WORKDIR={_sh(plan.workdir)}",
        "MOVED=0",
        "",
        f"sleep {plan.delay_seconds}",
        "",
        f"mkdir -p {_sh(plan.target.parent)} 2>/dev/null",
        'if [ -e "$TARGET" ]; then',
        '  rm -rf "$TARGET.previous"',
        '  mv "$TARGET" "$TARGET.previous" 2>/dev/null || rm -rf "$TARGET"',
        "fi",
        'if mv "$SOURCE" "$TARGET" 2>/dev/null; then',
        "  MOVED=1",
        'elif cp -R "$SOURCE" "$TARGET" 2>/dev/null; then',
        "  MOVED=1",
        '  echo "Move failed, copied $SOURCE instead"',
        "else",
        '  echo "Warning: could not relocate $SOURCE"',
        "fi",
        'if [ "$MOVED" = 1 ]; then',
        '  rm -rf "$TARGET.previous"',
        "else",
        '  rm -rf "$TARGET"',
        '  if [ -e "$TARGET.previous" ]; then',
        '    mv "$TARGET.previous" "$TARGET"',
        "  fi",
        "fi",
        "",
    ]
    for name in plan.required_subdirs:
        lines.append(f'mkdir -p "$RESOURCES"/{_sh(name)} 2>/dev/null')

    if plan.embedded_resource_dir is not None:
        lines.extend(
            [
                f"EMBEDDED={_sh(plan.embedded_resource_dir)}",
                'if [ "$MOVED" = 1 ]; then',
                f"  EMBEDDED={_sh(plan.embedded_resource_dir_after_move or plan.embedded_resource_dir)}",
                "fi",
                'if [ -d "$EMBEDDED" ]; then',
                '  cp -R "$EMBEDDED/." "$RESOURCES/" 2>/dev/null || echo "Warning: resource copy failed"',
                "else",
                '  echo "Warning: could not find embedded resources"',
                "fi",
            ]
        )

    if plan.permission_model is PermissionModel.POSIX:
        lines.extend(
            [
                'if [ "$MOVED" = 1 ]; then',
                f'  chmod -R {POSIX_PERMISSIONS} "$TARGET" 2>/dev/null',
                "fi",
                f'chmod -R {POSIX_PERMISSIONS} "$RESOURCES" 2>/dev/null',
            ]
        )

    if plan.desktop_entry_staged is not None and plan.desktop_entry_destination is not None:
        lines.extend(
            [
                f'if [ "$MOVED" = 1 ] && [ -f {_sh(plan.desktop_entry_staged)} ]; then',
                f"  mkdir -p {_sh(plan.desktop_entry_destination.parent)} 2>/dev/null",
                f"  cp {_sh(plan.desktop_entry_staged)} {_sh(plan.desktop_entry_destination)}"
                " 2>/dev/null || echo \"Warning: desktop entry not installed\"",
                "fi",
            ]
        )

    relaunch_moved = " ".join(_sh(arg) for arg in plan.relaunch_after_move)
    relaunch_original = " ".join(_sh(arg) for arg in plan.relaunch_fallback)
    lines.extend(
        [
            "",
            'if [ "$MOVED" = 1 ]; then',
            f"  {relaunch_moved} >/dev/null 2>&1 &",
            "else",
            f"  {relaunch_original} >/dev/null 2>&1 &",
            "fi",
            "",
            'rm -rf "$WORKDIR"',
            "exit 0",
        ]
    )
    return "\n".join(lines) + "\n"


def _bat(value: Path | str) -> str:
    text = str(value)
    if '"' in text:
        raise RelocationError("Batch script paths cannot contain double quotes", path=text)
    return text.replace("%", "%%")


def _bat_command(args: Sequence[str]) -> str:
    head, *rest = args
    return " ".join([head, *(f'"{_bat(arg)}"' for arg in rest)])


def render_batch_script(plan: MigrationPlan) -> str:
    """Render ``plan`` as a Windows batch file."""

    copy_fallback = (
        'xcopy "%SOURCE%" "%TARGET%\\" /e /i /h /y /q >nul 2>&1'
        if plan.source_is_dir
        else 'copy /y "%SOURCE%" "%TARGET%" >nul 2>&1'
    )
    remove_previous = (
        'rmdir /s /q "%TARGET%.previous" >nul 2>&1'
        if plan.source_is_dir
        else 'del /f /q "%TARGET%.previous" >nul 2>&1'
    )
    remove_partial = (
        'rmdir /s /q "%TARGET%" >nul 2>&1'
        if plan.source_is_dir
        else 'del /f /q "%TARGET%" >nul 2>&1'
    )
    lines = [
        "@echo off",
        "setlocal EnableExtensions",
        "rem Relocates the application once the launching process has exited.",
        "rem Every step is best effort; a relaunch is always attempted.",
        f'set "SOURCE={_bat(plan.source)}"',
        f'set "TARGET={_bat(plan.target)}"',
        f'set "RESOURCES={_bat(plan.resource_dir)}"',
        f'set "WORKDIR={_bat(plan.workdir)}"',
        'set "MOVED=0"',
        "",
        f"ping -n {plan.delay_seconds + 1} 127.0.0.1 >nul 2>&1",
        "",
        f'if not exist "{_bat(plan.target.parent)}" mkdir "{_bat(plan.target.parent)}"',
        f'if exist "%TARGET%.previous" {remove_previous}',
        'if exist "%TARGET%" move /y "%TARGET%" "%TARGET%.previous" >nul 2>&1',
        'move /y "%SOURCE%" "%TARGET%" >nul 2>&1 && set "MOVED=1"',
        f'if "%MOVED%"=="0" ({copy_fallback} && set "MOVED=1")',
        f'if "%MOVED%"=="1" {remove_previous}',
        f'if "%MOVED%"=="0" if exist "%TARGET%.previous" {remove_partial}',
        'if "%MOVED%"=="0" if exist "%TARGET%.previous" move /y "%TARGET%.previous" "%TARGET%" >nul 2>&1',
        "",
    ]
    for name in plan.required_subdirs:
        subdir = name.replace("/", "\\")
        lines.append(
            f'if not exist "%RESOURCES%\\{_bat(subdir)}" mkdir "%RESOURCES%\\{_bat(subdir)}"'
        )

    if plan.embedded_resource_dir is not None:
        moved_embedded = plan.embedded_resource_dir_after_move or plan.embedded_resource_dir
        lines.extend(
            [
                f'set "EMBEDDED={_bat(plan.embedded_resource_dir)}"',
                f'if "%MOVED%"=="1" set "EMBEDDED={_bat(moved_embedded)}"',
                'if exist "%EMBEDDED%\\" xcopy "%EMBEDDED%\\*" "%RESOURCES%\\" /e /i /h /y /q >nul 2>&1',
            ]
        )

    if plan.desktop_entry_staged is not None and plan.desktop_entry_destination is not None:
        staged = _bat(plan.desktop_entry_staged)
        destination = _bat(plan.desktop_entry_destination)
        destination_dir = _bat(plan.desktop_entry_destination.parent)
        lines.extend(
            [
                f'if "%MOVED%"=="1" if not exist "{destination_dir}" mkdir "{destination_dir}"',
                f'if "%MOVED%"=="1" if exist "{staged}" copy /y "{staged}" "{destination}" >nul 2>&1',
            ]
        )

    lines.extend(
        [
            "",
            f'if "%MOVED%"=="1" {_bat_command(plan.relaunch_after_move)}',
            f'if "%MOVED%"=="0" {_bat_command(plan.relaunch_fallback)}',
            "",
            'cd /d "%TEMP%"',
            '(goto) 2>nul & rmdir /s /q "%WORKDIR%"',
        ]
    )
    return "\r\n".join(lines) + "\r\n"


def render_script(plan: MigrationPlan) -> str:
    if plan.syntax is ScriptSyntax.BATCH:
        return render_batch_script(plan)
    return render_sh_script(plan)


def write_migration_script(plan: MigrationPlan, *, logger: logging.Logger | None = None) -> Path:
    """Write the script, the plan record and any staged desktop entry to the workdir."""

    log = resolve_logger(logger, LOGGER)
    script_path = plan.script_path
    try:
        plan.workdir.mkdir(parents=True, exist_ok=True)
        (plan.workdir / PLAN_FILENAME).write_text(
            json.dumps(plan.to_dict(), indent=2, sort_keys=True) + "\n", encoding="utf-8"
        )
        if plan.desktop_entry_staged is not None and plan.desktop_entry_content is not None:
            plan.desktop_entry_staged.write_text(
                plan.desktop_entry_content, encoding="utf-8", newline=""
            )
        # newline="" keeps CRLF line endings for batch files.
        script_path.write_text(render_script(plan), encoding="utf-8", newline="")
    except OSError as exc:
        log.error("relocation_failed stage=script_write path=%s error=%s", script_path, exc)
        raise RelocationError(f"Failed to write migration script: {exc}", path=script_path) from exc

    try:
        os.chmod(script_path, 0o755)
    except OSError as exc:
        log.error("relocation_failed stage=script_chmod path=%s error=%s", script_path, exc)
        raise RelocationError(
            f"Failed to make migration script executable: {exc}", path=script_path
        ) from exc

    log.info("relocation_script_written path=%s", script_path)
    return script_path


def spawn_detached(script_path: Path, syntax: ScriptSyntax) -> subprocess.Popen[bytes]:
    """Start ``script_path`` in a process that survives the current one."""

    common: dict[str, Any] = {
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
        "close_fds": True,
        "cwd": str(script_path.parent.parent),
    }
    try:
        if syntax is ScriptSyntax.BATCH:
            flags = getattr(subprocess, "DETACHED_PROCESS", 0x00000008) | getattr(
                subprocess, "CREATE_NEW_PROCESS_GROUP", 0x00000200
            )
            return subprocess.Popen(
                ["cmd.exe", "/c", str(script_path)], creationflags=flags, **common
            )
        return subprocess.Popen(["/bin/sh", str(script_path)], start_new_session=True, **common)
    except OSError as exc:
        raise RelocationError(f"Failed to launch migration script: {exc}", path=script_path) from exc
