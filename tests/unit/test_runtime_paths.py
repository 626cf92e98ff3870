"""Unit tests for executable and frozen bundle root helpers."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from anglewing_installer.errors import PathResolutionError
from anglewing_installer.runtime_paths import (
    bundle_roots,
    current_executable,
    find_embedded_resource_dir,
    is_frozen,
)


def test_current_executable_prefers_env_override(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    executable = tmp_path / "Downloads" / "anglewing"
    monkeypatch.setattr(sys, "frozen", True, raising=False)
    monkeypatch.setattr(sys, "executable", str(tmp_path / "other" / "python"), raising=False)

    resolved = current_executable({"ANGLEWING_EXECUTABLE": str(executable)})

    assert resolved == executable


def test_current_executable_uses_sys_executable_when_frozen(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    executable = tmp_path / "dist" / "anglewing"
    monkeypatch.setattr(sys, "frozen", True, raising=False)
    monkeypatch.setattr(sys, "executable", str(executable), raising=False)

    assert is_frozen() is True
    assert current_executable({}) == executable


def test_current_executable_falls_back_to_argv_when_not_frozen(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    script = tmp_path / "run_anglewing.py"
    monkeypatch.delattr(sys, "frozen", raising=False)
    monkeypatch.setattr(sys, "argv", [str(script)])

    assert current_executable({}) == script


def test_current_executable_raises_without_any_source(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delattr(sys, "frozen", raising=False)
    monkeypatch.setattr(sys, "argv", [])

    with pytest.raises(PathResolutionError, match="ANGLEWING_EXECUTABLE"):
        current_executable({})


def test_bundle_roots_dedupes_env_and_meipass(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    bundle_root = tmp_path / "bundle-root"
    bundle_root.mkdir()
    monkeypatch.delattr(sys, "frozen", raising=False)
    monkeypatch.setattr(sys, "_MEIPASS", str(bundle_root), raising=False)

    roots = bundle_roots({"ANGLEWING_BUNDLE_ROOT": str(bundle_root)})

    assert roots == [bundle_root.resolve()]


def test_bundle_roots_empty_when_unfrozen_without_hints(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delattr(sys, "frozen", raising=False)
    monkeypatch.delattr(sys, "_MEIPASS", raising=False)

    assert bundle_roots({}) == []


def test_find_embedded_resource_dir_checks_each_root(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    env_root = tmp_path / "env-root"
    env_root.mkdir()
    meipass = tmp_path / "meipass"
    (meipass / "public" / "animations").mkdir(parents=True)
    monkeypatch.delattr(sys, "frozen", raising=False)
    monkeypatch.setattr(sys, "_MEIPASS", str(meipass), raising=False)

    found = find_embedded_resource_dir("public", {"ANGLEWING_BUNDLE_ROOT": str(env_root)})

    assert found == meipass.resolve() / "public"


def test_find_embedded_resource_dir_returns_none_when_missing(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delattr(sys, "frozen", raising=False)
    monkeypatch.delattr(sys, "_MEIPASS", raising=False)

    assert find_embedded_resource_dir("public", {"ANGLEWING_BUNDLE_ROOT": str(tmp_path)}) is None
