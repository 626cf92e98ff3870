"""First-run relocation of the application into its canonical install root."""

from __future__ import annotations

import logging
import shutil
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from anglewing_installer.bundle import ResourceBundleSpec
from anglewing_installer.config import InstallerConfig
from anglewing_installer.errors import InstallerError, MaterializationError
from anglewing_installer.logging import resolve_logger
from anglewing_installer.materializer import ensure_resource_bundle
from anglewing_installer.migration import (
    MigrationPlan,
    build_migration_plan,
    create_workdir,
    spawn_detached,
    write_migration_script,
)
from anglewing_installer.platforms import PlatformPolicy, ScriptSyntax, detect_policy
from anglewing_installer.resolver import (
    CandidateOrigin,
    build_candidates,
    real_executable_path,
    resolve_resource_directory,
)
from anglewing_installer.runtime_paths import (
    EXECUTABLE_ENV,
    current_executable,
    find_embedded_resource_dir,
    is_frozen,
)

LOGGER = logging.getLogger(__name__)

Spawner = Callable[[Path, ScriptSyntax], Any]
ExitHook = Callable[[int], Any]


class InstallationState(StrEnum):
    ALREADY_CANONICAL = "already_canonical"
    NEEDS_RELOCATION = "needs_relocation"
    RELOCATION_IN_PROGRESS = "relocation_in_progress"


class OrchestratorState(StrEnum):
    START = "start"
    ALREADY_INSTALLED = "already_installed"
    NEEDS_MIGRATION = "needs_migration"
    MIGRATION_DISPATCHED = "migration_dispatched"
    REMAINED_IN_PLACE = "remained_in_place"
    FAILED = "failed"


@dataclass
class StartupResult:
    """What the startup hook decided, for the host and for diagnostics."""

    state: OrchestratorState = OrchestratorState.START
    history: list[OrchestratorState] = field(default_factory=lambda: [OrchestratorState.START])
    installation_state: InstallationState | None = None
    resource_dir: Path | None = None
    script_path: Path | None = None
    plan: MigrationPlan | None = None
    error: str | None = None

    @property
    def exit_requested(self) -> bool:
        return self.state is OrchestratorState.MIGRATION_DISPATCHED


def is_under(path: Path, root: Path) -> bool:
    return path == root or path.is_relative_to(root)


class RelocationOrchestrator:
    """Decide once per run whether the application must move, and dispatch the move.

    The spawn and exit hooks are injectable so the host controls process
    termination and tests never start real processes.
    """

    def __init__(
        self,
        config: InstallerConfig,
        policy: PlatformPolicy,
        *,
        executable: Path | None = None,
        spawn: Spawner = spawn_detached,
        exit_hook: ExitHook = sys.exit,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.policy = policy
        self.bundle_spec = ResourceBundleSpec.from_config(config)
        self._executable = executable
        self._spawn = spawn
        self._exit_hook = exit_hook
        self.log = resolve_logger(logger, LOGGER)

    def _transition(self, result: StartupResult, state: OrchestratorState) -> None:
        self.log.info(
            "relocation_state from=%s to=%s",
            result.state.value,
            state.value,
            extra={"state": state.value},
        )
        result.state = state
        result.history.append(state)

    def _fail(self, result: StartupResult, stage: str, exc: BaseException) -> StartupResult:
        self.log.exception(
            "relocation_failed stage=%s error=%s; continuing from current location", stage, exc
        )
        result.error = str(exc)
        self._transition(result, OrchestratorState.FAILED)
        return result

    def marker_path(self, executable: Path) -> Path:
        return executable.parent / self.config.marker_filename

    def classify(self, executable: Path) -> InstallationState:
        app_unit = self.policy.app_unit(executable)
        if is_under(app_unit, self.policy.canonical_install_root()):
            return InstallationState.ALREADY_CANONICAL
        try:
            marker_present = self.marker_path(executable).exists()
        except OSError:
            marker_present = False
        if marker_present:
            return InstallationState.RELOCATION_IN_PROGRESS
        return InstallationState.NEEDS_RELOCATION

    def _resolve(self, executable: Path) -> Path:
        return resolve_resource_directory(
            executable,
            policy=self.policy,
            bundle_spec=self.bundle_spec,
            resource_dir_name=self.config.resource_dir_name,
            ancestor_depth=self.config.ancestor_search_depth,
            logger=self.log,
        )

    def embedded_source(self, executable: Path) -> Path | None:
        """Find resources shipped with the current copy of the application."""

        app_unit = self.policy.app_unit(executable)
        embedded = self.policy.embedded_resource_dir(app_unit, self.config.resource_dir_name)
        if embedded is not None and embedded.is_dir():
            return embedded

        frozen_embedded = find_embedded_resource_dir(
            self.config.resource_dir_name, self.policy.environ
        )
        if frozen_embedded is not None:
            return frozen_embedded

        canonical_root = self.policy.canonical_install_root()
        for candidate in build_candidates(
            executable,
            self.policy,
            self.config.resource_dir_name,
            ancestor_depth=self.config.ancestor_search_depth,
        ):
            if candidate.origin is not CandidateOrigin.EXECUTABLE_SIBLING:
                break
            if is_under(candidate.path, canonical_root):
                continue
            if self.bundle_spec.is_satisfied_by(candidate.path):
                return candidate.path
        return None

    def _remain_in_place(self, result: StartupResult, executable: Path) -> StartupResult:
        resource_dir = self._resolve(executable)
        result.resource_dir = resource_dir
        if not self.bundle_spec.is_satisfied_by(resource_dir):
            self.log.warning("resource_bundle_missing path=%s", resource_dir)
        self._transition(result, OrchestratorState.REMAINED_IN_PLACE)
        return result

    def _patch_in_place(self, result: StartupResult, executable: Path) -> StartupResult:
        resource_dir = self._resolve(executable)
        result.resource_dir = resource_dir
        source = self.embedded_source(executable)
        try:
            report = ensure_resource_bundle(
                resource_dir,
                source,
                bundle_spec=self.bundle_spec,
                permission_model=self.policy.permission_model,
                logger=self.log,
            )
        except MaterializationError as exc:
            self.log.warning("resource_bundle_degraded path=%s error=%s", resource_dir, exc)
        else:
            if not report.complete:
                self.log.warning("resource_bundle_degraded path=%s", resource_dir)
        self._transition(result, OrchestratorState.ALREADY_INSTALLED)
        return result

    def _record_decision(self, executable: Path) -> bool:
        """Write the first-run marker; return whether this call created it."""

        marker = self.marker_path(executable)
        existed = marker.exists()
        try:
            marker.write_text("configured\n", encoding="utf-8")
        except OSError as exc:
            # Read-only launch locations (disk images, archives) still get relocated.
            self.log.warning("relocation_marker_failed path=%s error=%s", marker, exc)
            return False
        self.log.info("relocation_marker_written path=%s", marker)
        return not existed

    def _abandon_dispatch(
        self, executable: Path, plan: MigrationPlan, marker_written: bool
    ) -> None:
        if marker_written:
            marker = self.marker_path(executable)
            try:
                marker.unlink(missing_ok=True)
            except OSError as exc:
                self.log.warning("relocation_marker_cleanup_failed path=%s error=%s", marker, exc)
        shutil.rmtree(plan.workdir, ignore_errors=True)

    def _dispatch(self, result: StartupResult, executable: Path) -> StartupResult:
        canonical_root = self.policy.canonical_install_root()
        resource_dir = canonical_root / self.config.resource_dir_name
        source = self.embedded_source(executable)

        try:
            ensure_resource_bundle(
                resource_dir,
                source,
                bundle_spec=self.bundle_spec,
                permission_model=self.policy.permission_model,
                logger=self.log,
            )
        except MaterializationError as exc:
            return self._fail(result, "canonical_materialize", exc)
        result.resource_dir = resource_dir

        workdir: Path | None = None
        try:
            workdir = create_workdir(self.config.app_name)
            plan = build_migration_plan(
                policy=self.policy,
                executable=executable,
                resource_dir=resource_dir,
                required_subdirs=self.bundle_spec.required_subdirs,
                embedded_resource_dir=source,
                workdir=workdir,
                delay_seconds=self.config.relaunch_delay_seconds,
                install_desktop_entry=self.config.install_desktop_entry,
            )
            result.plan = plan
            script_path = write_migration_script(plan, logger=self.log)
            result.script_path = script_path
        except InstallerError as exc:
            if workdir is not None:
                shutil.rmtree(workdir, ignore_errors=True)
            return self._fail(result, "script_generation", exc)

        marker_written = self._record_decision(executable)

        try:
            self._spawn(script_path, plan.syntax)
        except (InstallerError, OSError) as exc:
            # A failed spawn leaves no marker behind.
            self._abandon_dispatch(executable, plan, marker_written)
            return self._fail(result, "spawn", exc)

        self.log.info(
            "relocation_dispatched source=%s target=%s script=%s",
            plan.source,
            plan.target,
            script_path,
        )
        self._transition(result, OrchestratorState.MIGRATION_DISPATCHED)
        self._exit_hook(0)
        return result

    def run(self) -> StartupResult:
        result = StartupResult()
        self.log.info("relocation_check_start platform=%s", self.policy.name)

        try:
            raw_executable = (
                self._executable
                if self._executable is not None
                else current_executable(self.policy.environ)
            )
        except InstallerError as exc:
            return self._fail(result, "executable", exc)
        executable = real_executable_path(raw_executable)
        self.log.debug("relocation_executable path=%s", executable)

        installation_state = self.classify(executable)
        result.installation_state = installation_state

        if installation_state is InstallationState.ALREADY_CANONICAL:
            self.log.info("relocation_not_needed reason=canonical path=%s", executable)
            return self._patch_in_place(result, executable)

        if installation_state is InstallationState.RELOCATION_IN_PROGRESS:
            self.log.info("relocation_skipped reason=marker_present path=%s", executable)
            return self._remain_in_place(result, executable)

        unmanaged = (
            self._executable is None
            and not is_frozen()
            and not self.policy.environ.get(EXECUTABLE_ENV)
        )
        if unmanaged:
            self.log.info("relocation_skipped reason=not_frozen path=%s", executable)
            return self._remain_in_place(result, executable)

        if not self.config.relocation_enabled:
            self.log.info("relocation_skipped reason=disabled path=%s", executable)
            self._record_decision(executable)
            return self._remain_in_place(result, executable)

        self._transition(result, OrchestratorState.NEEDS_MIGRATION)
        return self._dispatch(result, executable)


def run_startup(
    config: InstallerConfig | None = None,
    *,
    policy: PlatformPolicy | None = None,
    executable: Path | None = None,
    spawn: Spawner = spawn_detached,
    exit_hook: ExitHook = sys.exit,
    logger: logging.Logger | None = None,
) -> StartupResult:
    """Startup hook for the host application.

    Returns normally unless a relocation was dispatched, in which case
    ``exit_hook(0)`` is called once before returning.
    """

    resolved_config = config if config is not None else InstallerConfig()
    resolved_policy = policy if policy is not None else detect_policy(resolved_config)
    orchestrator = RelocationOrchestrator(
        resolved_config,
        resolved_policy,
        executable=executable,
        spawn=spawn,
        exit_hook=exit_hook,
        logger=logger,
    )
    return orchestrator.run()
