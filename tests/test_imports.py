"""Import smoke tests for the anglewing_installer package."""

from __future__ import annotations

import importlib


def test_import_anglewing_installer() -> None:
    module = importlib.import_module("anglewing_installer")
    assert hasattr(module, "__version__")
    assert hasattr(module, "run_startup")


def test_import_anglewing_installer_logging() -> None:
    module = importlib.import_module("anglewing_installer.logging")
    assert hasattr(module, "configure_logging")


def test_import_anglewing_installer_cli() -> None:
    module = importlib.import_module("anglewing_installer.cli")
    assert hasattr(module, "main")
