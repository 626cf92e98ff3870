"""Locate the resource bundle directory for the running executable."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from anglewing_installer.bundle import DEFAULT_BUNDLE_SPEC, ResourceBundleSpec
from anglewing_installer.config import DEFAULT_RESOURCE_DIR_NAME
from anglewing_installer.errors import PathResolutionError
from anglewing_installer.logging import resolve_logger
from anglewing_installer.platforms import PlatformPolicy
from anglewing_installer.runtime_paths import current_executable

LOGGER = logging.getLogger(__name__)

DEFAULT_ANCESTOR_DEPTH = 5


class CandidateOrigin(StrEnum):
    EXECUTABLE_SIBLING = "executable_sibling"
    STANDARD_INSTALL = "standard_install"
    USER_DATA = "user_data"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class CandidateLocation:
    path: Path
    rank: int
    origin: CandidateOrigin


def real_executable_path(executable: Path) -> Path:
    """Follow symlinks to the executable's real location."""

    try:
        return executable.resolve()
    except (OSError, RuntimeError):
        return executable.absolute()


def build_candidates(
    executable: Path,
    policy: PlatformPolicy,
    resource_dir_name: str = DEFAULT_RESOURCE_DIR_NAME,
    *,
    ancestor_depth: int = DEFAULT_ANCESTOR_DEPTH,
) -> list[CandidateLocation]:
    """Return candidate resource directories, best first.

    Ranks: 1 beside the app unit, 2 one level up, 3 per-machine install dirs,
    4 per-user data dirs, 5 ancestors of the app unit (development layouts).
    """

    layouts = policy.resource_layouts(resource_dir_name)
    app_unit = policy.app_unit(real_executable_path(executable))
    base = app_unit.parent

    tiers: list[tuple[int, CandidateOrigin, list[Path]]] = [
        (1, CandidateOrigin.EXECUTABLE_SIBLING, [base]),
        (2, CandidateOrigin.EXECUTABLE_SIBLING, [base.parent]),
        (3, CandidateOrigin.STANDARD_INSTALL, policy.standard_install_dirs()),
        (4, CandidateOrigin.USER_DATA, policy.user_data_dirs()),
        (5, CandidateOrigin.FALLBACK, list(base.parents)[:ancestor_depth]),
    ]

    candidates: list[CandidateLocation] = []
    seen: set[Path] = set()
    for rank, origin, roots in tiers:
        for root in roots:
            for layout in layouts:
                path = root / layout
                if path in seen:
                    continue
                seen.add(path)
                candidates.append(CandidateLocation(path=path, rank=rank, origin=origin))
    return candidates


def resolve_resource_directory(
    executable: Path,
    *,
    policy: PlatformPolicy,
    bundle_spec: ResourceBundleSpec = DEFAULT_BUNDLE_SPEC,
    resource_dir_name: str = DEFAULT_RESOURCE_DIR_NAME,
    ancestor_depth: int = DEFAULT_ANCESTOR_DEPTH,
    logger: logging.Logger | None = None,
) -> Path:
    """Return the first candidate satisfying ``bundle_spec``.

    When nothing qualifies the highest-priority candidate is returned so the
    caller has a deterministic directory to materialize.
    """

    log = resolve_logger(logger, LOGGER)
    candidates = build_candidates(
        executable, policy, resource_dir_name, ancestor_depth=ancestor_depth
    )
    for candidate in candidates:
        if bundle_spec.is_satisfied_by(candidate.path):
            log.info(
                "resource_dir_resolved path=%s rank=%s origin=%s",
                candidate.path,
                candidate.rank,
                candidate.origin.value,
                extra={"path": candidate.path},
            )
            return candidate.path
        log.debug("resource_dir_candidate_rejected path=%s rank=%s", candidate.path, candidate.rank)

    fallback = candidates[0].path
    log.warning("resource_dir_not_found default=%s candidates=%s", fallback, len(candidates))
    return fallback


def log_directory_listing(directory: Path, logger: logging.Logger, *, depth: int = 2) -> None:
    """Log the entries of ``directory`` (and one nested level by default)."""

    _log_entries(directory, logger, depth=depth, indent="  ")


def _log_entries(directory: Path, logger: logging.Logger, *, depth: int, indent: str) -> None:
    try:
        entries = sorted(directory.iterdir(), key=lambda path: path.name)
    except OSError as exc:
        logger.error("resource_dir_list_failed path=%s error=%s", directory, exc)
        return
    for entry in entries:
        is_dir = entry.is_dir()
        logger.info("%s%s - %s", indent, "DIR" if is_dir else "FILE", entry.name)
        if is_dir and depth > 1:
            _log_entries(entry, logger, depth=depth - 1, indent=indent + "  ")


def get_resource_directory(
    *,
    policy: PlatformPolicy,
    executable: Path | None = None,
    bundle_spec: ResourceBundleSpec = DEFAULT_BUNDLE_SPEC,
    resource_dir_name: str = DEFAULT_RESOURCE_DIR_NAME,
    ancestor_depth: int = DEFAULT_ANCESTOR_DEPTH,
    logger: logging.Logger | None = None,
) -> str:
    """Return the usable resource directory for the UI layer.

    Raises:
        PathResolutionError: the executable cannot be determined, or the
            resolved directory is missing, not a directory, or unreadable.
    """

    log = resolve_logger(logger, LOGGER)
    try:
        exe_path = executable if executable is not None else current_executable(policy.environ)
    except PathResolutionError:
        log.exception("resource_dir_query_failed stage=executable")
        raise

    public_dir = resolve_resource_directory(
        exe_path,
        policy=policy,
        bundle_spec=bundle_spec,
        resource_dir_name=resource_dir_name,
        ancestor_depth=ancestor_depth,
        logger=log,
    )

    if not public_dir.exists():
        log.error("resource_dir_query_failed reason=missing path=%s", public_dir)
        raise PathResolutionError("Resource directory does not exist", path=public_dir)
    if not public_dir.is_dir():
        log.error("resource_dir_query_failed reason=not_a_directory path=%s", public_dir)
        raise PathResolutionError("Resource path is not a directory", path=public_dir)
    try:
        next(iter(public_dir.iterdir()), None)
    except OSError as exc:
        log.error("resource_dir_query_failed reason=unreadable path=%s", public_dir)
        raise PathResolutionError(
            f"Resource directory is not readable: {exc}", path=public_dir
        ) from exc

    log.info("resource_dir_contents path=%s", public_dir)
    log_directory_listing(public_dir, log)
    return str(public_dir)
