"""Create and populate resource bundle directories."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from anglewing_installer.bundle import DEFAULT_BUNDLE_SPEC, ResourceBundleSpec, is_complete
from anglewing_installer.errors import MaterializationError
from anglewing_installer.logging import resolve_logger
from anglewing_installer.platforms import PermissionModel

LOGGER = logging.getLogger(__name__)

DIR_MODE = 0o755
FILE_MODE = 0o644


@dataclass
class MaterializationReport:
    """Outcome of one ``ensure_resource_bundle`` call."""

    target: Path
    created: list[Path] = field(default_factory=list)
    copied: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    complete: bool = False


def _apply_mode(
    path: Path,
    mode: int,
    permission_model: PermissionModel,
    report: MaterializationReport,
    log: logging.Logger,
) -> None:
    if permission_model is not PermissionModel.POSIX:
        return
    try:
        os.chmod(path, mode)
    except OSError as exc:
        message = f"Unable to set permissions {oct(mode)} on '{path}': {exc}"
        log.warning("materialize_chmod_failed path=%s error=%s", path, exc)
        report.warnings.append(message)


def _create_structure(
    target_dir: Path,
    spec: ResourceBundleSpec,
    permission_model: PermissionModel,
    report: MaterializationReport,
    log: logging.Logger,
) -> None:
    existed = target_dir.is_dir()
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        log.error(
            "materialize_failed stage=create_root path=%s error=%s",
            target_dir,
            exc,
            extra={"path": target_dir},
        )
        raise MaterializationError(
            f"Failed to create resource directory: {exc}", path=target_dir
        ) from exc
    if not existed:
        report.created.append(target_dir)
        _apply_mode(target_dir, DIR_MODE, permission_model, report, log)

    for name in spec.required_subdirs:
        subdir = target_dir / name
        if subdir.is_dir():
            continue
        try:
            subdir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            log.warning("materialize_subdir_failed path=%s error=%s", subdir, exc)
            report.warnings.append(f"Failed to create '{subdir}': {exc}")
            continue
        report.created.append(subdir)
        _apply_mode(subdir, DIR_MODE, permission_model, report, log)


def _stage_copy(source_dir: Path, staging_dir: Path) -> list[Path]:
    """Copy ``source_dir`` into ``staging_dir``; return staged paths relative to it."""

    staged: list[Path] = []
    for src_path in sorted(source_dir.rglob("*")):
        relative = src_path.relative_to(source_dir)
        dst_path = staging_dir / relative
        try:
            if src_path.is_dir():
                dst_path.mkdir(parents=True, exist_ok=True)
            else:
                dst_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(src_path, dst_path)
        except OSError as exc:
            raise MaterializationError(
                f"Failed to copy resource entry '{relative}': {exc}", path=src_path
            ) from exc
        staged.append(relative)
    return staged


def _commit_staged(
    staging_dir: Path,
    target_dir: Path,
    staged: list[Path],
    permission_model: PermissionModel,
    report: MaterializationReport,
    log: logging.Logger,
) -> None:
    for relative in staged:
        staged_path = staging_dir / relative
        dst_path = target_dir / relative
        try:
            if staged_path.is_dir():
                dst_path.mkdir(parents=True, exist_ok=True)
                _apply_mode(dst_path, DIR_MODE, permission_model, report, log)
                continue
            dst_path.parent.mkdir(parents=True, exist_ok=True)
            os.replace(staged_path, dst_path)
        except OSError as exc:
            raise MaterializationError(
                f"Failed to install resource entry '{relative}': {exc}", path=dst_path
            ) from exc
        _apply_mode(dst_path, FILE_MODE, permission_model, report, log)
        report.copied.append(dst_path)


def copy_resource_tree(
    source_dir: Path,
    target_dir: Path,
    *,
    permission_model: PermissionModel = PermissionModel.POSIX,
    report: MaterializationReport | None = None,
    logger: logging.Logger | None = None,
) -> MaterializationReport:
    """Copy ``source_dir`` into ``target_dir`` as a single unit.

    Everything is first copied into a temporary sibling of ``target_dir``; any
    unreadable entry aborts the call before ``target_dir`` is modified.
    """

    log = resolve_logger(logger, LOGGER)
    result = report if report is not None else MaterializationReport(target=target_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    staging_dir = Path(tempfile.mkdtemp(prefix=f".{target_dir.name}-staging-", dir=target_dir.parent))
    try:
        staged = _stage_copy(source_dir, staging_dir)
        _commit_staged(staging_dir, target_dir, staged, permission_model, result, log)
    finally:
        shutil.rmtree(staging_dir, ignore_errors=True)
    log.info(
        "materialize_copy_complete source=%s target=%s files=%s",
        source_dir,
        target_dir,
        len(result.copied),
    )
    return result


def ensure_resource_bundle(
    target_dir: Path,
    embedded_source_dir: Path | None = None,
    *,
    bundle_spec: ResourceBundleSpec = DEFAULT_BUNDLE_SPEC,
    permission_model: PermissionModel = PermissionModel.POSIX,
    logger: logging.Logger | None = None,
) -> MaterializationReport:
    """Make ``target_dir`` match ``bundle_spec``, copying from the embedded source if needed.

    Safe to call repeatedly. A bundle that stays incomplete because no source
    is available is reported as a warning, not an error.

    Raises:
        MaterializationError: the target directory cannot be created, or the
            copy from the embedded source failed.
    """

    log = resolve_logger(logger, LOGGER)
    report = MaterializationReport(target=target_dir)
    _create_structure(target_dir, bundle_spec, permission_model, report, log)

    source = embedded_source_dir
    if source is not None:
        try:
            usable = source.is_dir() and source.resolve() != target_dir.resolve()
        except OSError:
            usable = False
        if not usable:
            log.info("materialize_source_unavailable source=%s", source)
            source = None

    if is_complete(target_dir, bundle_spec, source):
        report.complete = True
        log.info(
            "materialize_complete target=%s created=%s",
            target_dir,
            len(report.created),
            extra={"path": target_dir},
        )
        return report

    if source is None:
        message = (
            f"Resource bundle at '{target_dir}' is incomplete and no embedded source is "
            "available; continuing with empty directories."
        )
        log.warning(
            "materialize_incomplete target=%s reason=no_source",
            target_dir,
            extra={"path": target_dir},
        )
        report.warnings.append(message)
        return report

    log.info("materialize_copy_start source=%s target=%s", source, target_dir)
    try:
        copy_resource_tree(
            source, target_dir, permission_model=permission_model, report=report, logger=log
        )
    except MaterializationError:
        log.exception(
            "materialize_failed stage=copy target=%s", target_dir, extra={"path": target_dir}
        )
        raise
    except OSError as exc:
        log.exception(
            "materialize_failed stage=staging target=%s", target_dir, extra={"path": target_dir}
        )
        raise MaterializationError(f"Failed to stage resource copy: {exc}", path=target_dir) from exc

    report.complete = bundle_spec.is_satisfied_by(target_dir)
    if not report.complete:
        log.warning(
            "materialize_incomplete target=%s reason=source_incomplete",
            target_dir,
            extra={"path": target_dir},
        )
        report.warnings.append(
            f"Embedded source '{source}' does not provide every required entry."
        )
    return report
