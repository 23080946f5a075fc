"""Command line entry point for upgrading and rolling back the installed tool."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from app.config import get_updater_config, load_updater_config
from services.update.builder import (
    build_console,
    build_rollback_orchestrator,
    build_update_service,
    find_install_root,
)
from services.update.capabilities import get_platform_capabilities
from services.update.constants import HELPER_SUBCOMMAND
from services.update.helper import run_helper
from services.update.models import UpdateError
from shared.logging_config import LogVerbosity, ensure_app_logging

_LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="selfupdate",
        description="Upgrade the installed tool in place or roll back to the last backup.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="upgrade",
        choices=("upgrade", "rollback", HELPER_SUBCOMMAND),
        help="Action to perform (default: upgrade).",
    )
    parser.add_argument(
        "record",
        nargs="?",
        type=Path,
        help=argparse.SUPPRESS,
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print directory listings and test-run the staged executable.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to an updater configuration file.",
    )
    parser.add_argument(
        "--install-root",
        type=Path,
        help="Installation directory to manage (defaults to the executable's directory).",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    ensure_app_logging(LogVerbosity.VERBOSE if args.verbose else None)

    if args.command == HELPER_SUBCOMMAND:
        if args.record is None:
            parser.error(f"{HELPER_SUBCOMMAND} requires the replacement record path")
        return run_helper(args.record)

    config = load_updater_config(args.config) if args.config else get_updater_config()
    install_root = find_install_root(args.install_root)
    capabilities = get_platform_capabilities()
    console = build_console(capabilities)
    _LOGGER.debug("Running %s against %s", args.command, install_root)

    try:
        if args.command == "rollback":
            outcome = build_rollback_orchestrator(config, install_root=install_root).rollback()
            console.info(outcome.message)
            return 0

        service = build_update_service(
            config,
            install_root=install_root,
            console=console,
            capabilities=capabilities,
        )
        service.upgrade(verbose=args.verbose)
    except UpdateError as exc:
        _LOGGER.error("%s failed: %s", args.command, exc)
        console.info(f"error: {exc}")
        return 1
    return 0


__all__ = ["build_parser", "main"]
