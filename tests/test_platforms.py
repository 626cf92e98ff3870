"""Tests for per-platform install locations and capabilities."""

from __future__ import annotations

from pathlib import Path

import pytest

from anglewing_installer.config import InstallerConfig
from anglewing_installer.platforms import (
    LinuxPolicy,
    MacOSPolicy,
    PermissionModel,
    PlatformPolicy,
    ScriptSyntax,
    WindowsPolicy,
    detect_policy,
)


def test_linux_policy_uses_xdg_data_home(tmp_path: Path) -> None:
    policy = LinuxPolicy(
        app_name="Anglewing",
        environ={"XDG_DATA_HOME": str(tmp_path / "xdg")},
        home=tmp_path / "home",
    )

    assert policy.canonical_install_root() == tmp_path / "xdg" / "Anglewing"
    assert policy.user_data_dirs() == [tmp_path / "xdg" / "Anglewing"]
    assert policy.standard_install_dirs() == [Path("/opt/Anglewing"), Path("/usr/lib/Anglewing")]
    assert policy.resource_layouts("public") == ("public", "_up_/public")
    assert policy.permission_model is PermissionModel.POSIX
    assert policy.script_syntax is ScriptSyntax.SH


def test_linux_policy_falls_back_when_xdg_unset(tmp_path: Path) -> None:
    policy = LinuxPolicy(app_name="Anglewing", environ={"XDG_DATA_HOME": "  "}, home=tmp_path)

    assert policy.canonical_install_root() == tmp_path / ".local" / "share" / "Anglewing"


def test_canonical_root_override_wins(tmp_path: Path) -> None:
    policy = MacOSPolicy(
        app_name="Anglewing", home=tmp_path, canonical_root_override=tmp_path / "Apps"
    )

    assert policy.canonical_install_root() == tmp_path / "Apps"


def test_macos_policy_locations(tmp_path: Path) -> None:
    policy = MacOSPolicy(app_name="Anglewing", home=tmp_path)

    assert policy.canonical_install_root() == Path("/Applications/Anglewing")
    assert policy.user_data_dirs() == [
        tmp_path / "Library" / "Application Support" / "Anglewing"
    ]
    assert policy.resource_layouts("public") == ("public",)
    assert policy.desktop_entry(Path("/Applications/Anglewing/Anglewing.app")) is None


def test_macos_app_unit_is_enclosing_bundle(tmp_path: Path) -> None:
    policy = MacOSPolicy(app_name="Anglewing", home=tmp_path)
    bundle = tmp_path / "Downloads" / "Anglewing.app"
    executable = bundle / "Contents" / "MacOS" / "anglewing"

    assert policy.app_unit(executable) == bundle
    assert policy.embedded_resource_dir(bundle, "public") == (
        bundle / "Contents" / "Resources" / "public"
    )
    assert policy.relaunch_command(executable, bundle) == ["open", str(bundle)]


def test_macos_app_unit_without_bundle_is_executable(tmp_path: Path) -> None:
    policy = MacOSPolicy(app_name="Anglewing", home=tmp_path)
    executable = tmp_path / "bin" / "anglewing"

    assert policy.app_unit(executable) == executable
    assert policy.embedded_resource_dir(executable, "public") is None


def test_windows_policy_reads_environment(tmp_path: Path) -> None:
    environ = {
        "LOCALAPPDATA": str(tmp_path / "Local"),
        "APPDATA": str(tmp_path / "Roaming"),
        "ProgramFiles": str(tmp_path / "Program Files"),
        "ProgramFiles(x86)": str(tmp_path / "Program Files (x86)"),
    }
    policy = WindowsPolicy(app_name="Anglewing", environ=environ, home=tmp_path)

    assert policy.canonical_install_root() == tmp_path / "Local" / "Programs" / "Anglewing"
    assert policy.standard_install_dirs() == [
        tmp_path / "Program Files" / "Anglewing",
        tmp_path / "Program Files (x86)" / "Anglewing",
    ]
    assert policy.user_data_dirs() == [tmp_path / "Roaming" / "Anglewing"]
    assert policy.resource_layouts("public") == ("_up_/public", "public")
    assert policy.permission_model is PermissionModel.NONE
    assert policy.script_syntax is ScriptSyntax.BATCH


def test_windows_policy_hardcoded_fallbacks(tmp_path: Path) -> None:
    policy = WindowsPolicy(app_name="Anglewing", environ={}, home=tmp_path)

    assert [str(path.parent) for path in policy.standard_install_dirs()] == [
        "C:\\Program Files",
        "C:\\Program Files (x86)",
    ]
    assert policy.canonical_install_root() == (
        tmp_path / "AppData" / "Local" / "Programs" / "Anglewing"
    )


def test_linux_desktop_entry_quotes_exec(tmp_path: Path) -> None:
    policy = LinuxPolicy(
        app_name="Anglewing", environ={"XDG_DATA_HOME": str(tmp_path / "xdg")}, home=tmp_path
    )
    executable = tmp_path / "xdg" / "Anglewing" / "my $app"

    entry = policy.desktop_entry(executable)

    assert entry is not None
    assert entry.destination == tmp_path / "xdg" / "applications" / "anglewing.desktop"
    assert "[Desktop Entry]" in entry.content
    assert f'Exec="{executable.parent}/my \\$app"' in entry.content


def test_windows_desktop_entry_is_start_menu_launcher(tmp_path: Path) -> None:
    policy = WindowsPolicy(
        app_name="Anglewing", environ={"APPDATA": str(tmp_path / "Roaming")}, home=tmp_path
    )
    executable = tmp_path / "Programs" / "Anglewing" / "Anglewing.exe"

    entry = policy.desktop_entry(executable)

    assert entry is not None
    assert entry.destination.name == "Anglewing.cmd"
    assert "Start Menu" in entry.destination.parts
    assert f'start "" "{executable}"' in entry.content
    assert entry.content.endswith("\r\n")


@pytest.mark.parametrize(
    ("system", "expected"),
    [
        ("Darwin", MacOSPolicy),
        ("Linux", LinuxPolicy),
        ("Windows", WindowsPolicy),
        ("FreeBSD", LinuxPolicy),
    ],
)
def test_detect_policy_by_system(system: str, expected: type, tmp_path: Path) -> None:
    config = InstallerConfig(canonical_root=tmp_path / "canonical")

    policy = detect_policy(config, system=system, environ={}, home=tmp_path)

    assert type(policy) is expected
    assert policy.app_name == "Anglewing"
    assert policy.canonical_install_root() == tmp_path / "canonical"


def test_base_policy_cannot_be_instantiated(tmp_path: Path) -> None:
    with pytest.raises(TypeError):
        PlatformPolicy(app_name="Anglewing", home=tmp_path)  # type: ignore[abstract]
