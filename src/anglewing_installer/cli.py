"""Command-line interface for the Anglewing installer."""

from __future__ import annotations

import argparse
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import cast

from anglewing_installer.bundle import ResourceBundleSpec
from anglewing_installer.config import InstallerConfig, load_config
from anglewing_installer.errors import InstallerError
from anglewing_installer.logging import configure_logging
from anglewing_installer.materializer import ensure_resource_bundle
from anglewing_installer.migration import build_migration_plan, render_script
from anglewing_installer.orchestrator import RelocationOrchestrator, run_startup
from anglewing_installer.platforms import PlatformPolicy, detect_policy
from anglewing_installer.resolver import get_resource_directory, real_executable_path
from anglewing_installer.runtime_paths import current_executable

CONFIG_ENV = "ANGLEWING_INSTALLER_CONFIG"


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Installer YAML config. Defaults to ${CONFIG_ENV}, then built-in defaults.",
    )
    parser.add_argument("--log-level", default=None, help="Override the configured log level.")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write JSON logs here.")
    parser.add_argument(
        "--executable",
        type=Path,
        default=None,
        help="Treat this path as the running executable instead of detecting it.",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser."""

    parser = argparse.ArgumentParser(prog="anglewing-installer")
    subparsers = parser.add_subparsers(dest="command")

    startup_parser = subparsers.add_parser(
        "startup", help="Run the first-run relocation check used at application startup."
    )
    _add_common_arguments(startup_parser)
    startup_parser.set_defaults(handler=_startup_command)

    resolve_parser = subparsers.add_parser("resolve", help="Print the resource directory.")
    _add_common_arguments(resolve_parser)
    resolve_parser.set_defaults(handler=_resolve_command)

    materialize_parser = subparsers.add_parser(
        "materialize", help="Create or repair a resource directory."
    )
    _add_common_arguments(materialize_parser)
    materialize_parser.add_argument("--target", type=Path, required=True)
    materialize_parser.add_argument(
        "--source", type=Path, default=None, help="Resource tree to copy from when incomplete."
    )
    materialize_parser.set_defaults(handler=_materialize_command)

    plan_parser = subparsers.add_parser(
        "plan", help="Print the relocation script without writing or running it."
    )
    _add_common_arguments(plan_parser)
    plan_parser.set_defaults(handler=_plan_command)
    return parser


def _load_cli_config(args: argparse.Namespace) -> InstallerConfig:
    config_path = args.config
    if config_path is None and os.environ.get(CONFIG_ENV):
        config_path = Path(os.environ[CONFIG_ENV])
    config = load_config(config_path) if config_path is not None else InstallerConfig()
    return config


def _setup(args: argparse.Namespace) -> tuple[InstallerConfig, PlatformPolicy, logging.Logger]:
    config = _load_cli_config(args)
    logger = configure_logging(
        log_level=args.log_level or config.log_level,
        log_file=args.log_file or config.log_file,
    )
    return config, detect_policy(config), logger


def _startup_command(args: argparse.Namespace) -> int:
    config, policy, logger = _setup(args)
    result = run_startup(config, policy=policy, executable=args.executable, logger=logger)
    print(f"Anglewing installer state: {result.state.value}")
    if result.error:
        print(f"Error: {result.error}")
    return 0


def _resolve_command(args: argparse.Namespace) -> int:
    config, policy, logger = _setup(args)
    try:
        resource_dir = get_resource_directory(
            policy=policy,
            executable=args.executable,
            bundle_spec=ResourceBundleSpec.from_config(config),
            resource_dir_name=config.resource_dir_name,
            ancestor_depth=config.ancestor_search_depth,
            logger=logger,
        )
    except InstallerError as exc:
        print(f"Error: {exc}")
        return 1
    print(resource_dir)
    return 0


def _materialize_command(args: argparse.Namespace) -> int:
    config, policy, logger = _setup(args)
    try:
        report = ensure_resource_bundle(
            args.target,
            args.source,
            bundle_spec=ResourceBundleSpec.from_config(config),
            permission_model=policy.permission_model,
            logger=logger,
        )
    except InstallerError as exc:
        print(f"Error: {exc}")
        return 1
    print(
        f"Resource bundle at {report.target}: "
        f"{'complete' if report.complete else 'incomplete'} "
        f"({len(report.created)} created, {len(report.copied)} copied)"
    )
    for warning in report.warnings:
        print(f"Warning: {warning}")
    return 0


def _plan_command(args: argparse.Namespace) -> int:
    config, policy, logger = _setup(args)
    try:
        raw_executable = args.executable or current_executable(policy.environ)
        executable = real_executable_path(raw_executable)
        orchestrator = RelocationOrchestrator(config, policy, executable=executable, logger=logger)
        canonical_root = policy.canonical_install_root()
        plan = build_migration_plan(
            policy=policy,
            executable=executable,
            resource_dir=canonical_root / config.resource_dir_name,
            required_subdirs=config.required_subdirs,
            embedded_resource_dir=orchestrator.embedded_source(executable),
            workdir=Path("<workdir>"),
            delay_seconds=config.relaunch_delay_seconds,
            install_desktop_entry=config.install_desktop_entry,
        )
    except InstallerError as exc:
        print(f"Error: {exc}")
        return 1
    print(render_script(plan), end="")
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""

    parser = build_parser()
    args = parser.parse_args(argv)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 0
    command_handler = cast(Callable[[argparse.Namespace], int], handler)
    try:
        return command_handler(args)
    except ValueError as exc:
        parser.error(str(exc))
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
