"""
qjs-builder — native binary compiler for QuickJS projects.

    qjs-builder build [-t TRIPLE ...] [-C DIR] [-v]
    qjs-builder fetch
    qjs-builder targets
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from qjs_builder import __version__
from qjs_builder.config import BuildConfig, Settings
from qjs_builder.core.targets import TARGETS
from qjs_builder.errors import BuildError
from qjs_builder.io.fetch import FetchError, fetch_all
from qjs_builder.io.manifest import load_manifest
from qjs_builder.runner import EXIT_FATAL, exit_code_for, run_build

logger = logging.getLogger("qjs_builder")


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qjs-builder",
        description="Compile a QuickJS project into native binaries with zig cc",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    sub = parser.add_subparsers(dest="command")

    build = sub.add_parser("build", help="Compile the project described by package.json")
    build.add_argument(
        "-C", "--project",
        type=Path,
        default=Path.cwd(),
        help="Project root holding package.json (default: current directory)",
    )
    build.add_argument(
        "-t", "--target",
        action="append",
        default=[],
        help="Only build this target triple (repeatable)",
    )
    build.add_argument("--no-receipt", action="store_true", help="Do not write build_receipt.json")

    sub.add_parser("fetch", help="Download zig and the QuickJS sources")
    sub.add_parser("targets", help="List supported targets")
    sub.add_parser("help", help="Show this help message")
    return parser


def _cmd_build(args: argparse.Namespace, settings: Settings) -> int:
    try:
        manifest = load_manifest(args.project)
        config = BuildConfig.create(
            args.project,
            manifest,
            settings,
            target_ids=tuple(args.target),
        )
    except (BuildError, ValueError) as e:
        logger.error("%s", e)
        return EXIT_FATAL

    logger.info("Starting build of %s", config.app_name)
    receipt = run_build(config, write=not args.no_receipt)
    return exit_code_for(receipt)


def _cmd_targets() -> int:
    for t in TARGETS:
        print(f"{t.id:<22} {t.os_family.value:<7} {t.interpreter_binary:<18} {t.precompiler_binary}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = _parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    if args.command in (None, "help"):
        parser.print_help()
        return 0
    if args.command == "targets":
        return _cmd_targets()

    try:
        settings = Settings()
    except ValidationError as e:
        logger.error("Invalid settings: %s", e)
        return EXIT_FATAL
    if args.command == "fetch":
        try:
            fetch_all(settings)
        except FetchError as e:
            logger.error("Installation failed: %s", e)
            return EXIT_FATAL
        return 0
    return _cmd_build(args, settings)


if __name__ == "__main__":
    sys.exit(main())
