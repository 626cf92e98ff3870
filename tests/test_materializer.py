"""Tests for resource bundle materialization."""

from __future__ import annotations

import logging
import os
import shutil
import stat
import sys
from pathlib import Path

import pytest

from anglewing_installer import materializer
from anglewing_installer.bundle import DEFAULT_BUNDLE_SPEC, ResourceBundleSpec
from anglewing_installer.errors import MaterializationError
from anglewing_installer.materializer import copy_resource_tree, ensure_resource_bundle
from anglewing_installer.platforms import PermissionModel


def _make_source(root: Path, file_count: int = 3) -> Path:
    (root / "animations").mkdir(parents=True)
    (root / "backgrounds").mkdir(parents=True)
    for index in range(file_count):
        (root / "animations" / f"frame-{index}.json").write_text(
            f'{{"frame": {index}}}', encoding="utf-8"
        )
    (root / "backgrounds" / "sky.png").write_bytes(bytes(range(256)))
    return root


def test_creates_structure_without_source(tmp_path: Path) -> None:
    target = tmp_path / "install" / "public"

    report = ensure_resource_bundle(target)

    assert (target / "animations").is_dir()
    assert (target / "backgrounds").is_dir()
    assert report.complete
    assert target in report.created
    assert report.copied == []


def test_copies_every_source_file_byte_for_byte(tmp_path: Path) -> None:
    source = _make_source(tmp_path / "embedded", file_count=5)
    target = tmp_path / "install" / "public"

    report = ensure_resource_bundle(target, source)

    assert report.complete
    assert len(report.copied) == 6
    for src_file in source.rglob("*"):
        if src_file.is_file():
            copied = target / src_file.relative_to(source)
            assert copied.read_bytes() == src_file.read_bytes()


def test_second_call_is_a_no_op(tmp_path: Path) -> None:
    source = _make_source(tmp_path / "embedded")
    target = tmp_path / "install" / "public"
    ensure_resource_bundle(target, source)
    before = {path: path.stat().st_mtime_ns for path in target.rglob("*")}

    report = ensure_resource_bundle(target, source)

    assert report.complete
    assert report.created == []
    assert report.copied == []
    assert {path: path.stat().st_mtime_ns for path in target.rglob("*")} == before


def test_empty_required_subdir_triggers_copy(tmp_path: Path) -> None:
    source = _make_source(tmp_path / "embedded")
    target = tmp_path / "install" / "public"
    (target / "animations").mkdir(parents=True)
    (target / "backgrounds").mkdir(parents=True)
    spec = ResourceBundleSpec(non_empty_subdirs=("animations",))

    report = ensure_resource_bundle(target, source, bundle_spec=spec)

    assert report.complete
    assert (target / "animations" / "frame-0.json").is_file()


def test_missing_source_leaves_empty_bundle_with_warning(tmp_path: Path) -> None:
    target = tmp_path / "install" / "public"
    spec = ResourceBundleSpec(non_empty_subdirs=("animations",))

    report = ensure_resource_bundle(target, tmp_path / "does-not-exist", bundle_spec=spec)

    assert not report.complete
    assert (target / "animations").is_dir()
    assert report.warnings
    assert "no embedded source" in report.warnings[0]


def test_source_equal_to_target_is_ignored(tmp_path: Path) -> None:
    target = _make_source(tmp_path / "public")

    report = ensure_resource_bundle(target, target)

    assert report.complete
    assert report.copied == []


def test_copy_failure_leaves_target_untouched(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    source = _make_source(tmp_path / "embedded")
    target = tmp_path / "install" / "public"
    real_copyfile = shutil.copyfile
    calls: list[Path] = []

    def flaky_copyfile(src: Path, dst: Path) -> Path:
        calls.append(Path(src))
        if len(calls) == 2:
            raise PermissionError("unreadable")
        return Path(real_copyfile(src, dst))

    monkeypatch.setattr(materializer.shutil, "copyfile", flaky_copyfile)

    with pytest.raises(MaterializationError, match="Failed to copy resource entry"):
        ensure_resource_bundle(target, source)

    assert [path for path in target.rglob("*") if path.is_file()] == []
    assert [path.name for path in target.parent.iterdir()] == ["public"]


def test_uncreatable_target_raises(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file in the way", encoding="utf-8")

    with pytest.raises(MaterializationError, match="Failed to create resource directory") as excinfo:
        ensure_resource_bundle(blocker / "public")

    assert excinfo.value.path == blocker / "public"


@pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX permission bits")
def test_posix_modes_are_applied(tmp_path: Path) -> None:
    source = _make_source(tmp_path / "embedded")
    os.chmod(source / "backgrounds" / "sky.png", 0o600)
    target = tmp_path / "install" / "public"

    ensure_resource_bundle(target, source, permission_model=PermissionModel.POSIX)

    assert stat.S_IMODE((target / "backgrounds").stat().st_mode) == 0o755
    assert stat.S_IMODE((target / "backgrounds" / "sky.png").stat().st_mode) == 0o644


def test_copy_resource_tree_reports_copied_files(tmp_path: Path) -> None:
    source = _make_source(tmp_path / "embedded", file_count=1)
    target = tmp_path / "public"

    report = copy_resource_tree(source, target, permission_model=PermissionModel.NONE)

    assert sorted(path.relative_to(target) for path in report.copied) == [
        Path("animations/frame-0.json"),
        Path("backgrounds/sky.png"),
    ]
    assert DEFAULT_BUNDLE_SPEC.is_satisfied_by(target)


def test_log_records_carry_target_path(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    target = tmp_path / "install" / "public"

    with caplog.at_level(logging.INFO, logger="anglewing_installer.materializer"):
        ensure_resource_bundle(target)

    complete = [
        record
        for record in caplog.records
        if record.getMessage().startswith("materialize_complete")
    ]
    assert len(complete) == 1
    assert complete[0].path == target
