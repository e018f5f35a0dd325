"""Command line entry point.

Usage:
    bob build [-C DIR] [--release] [-j N]
    bob run [-C DIR] [--release] [-j N]
    bob clean [-C DIR]
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

from bob.driver import Driver
from bob.errors import BobError
from bob.settings import settings_from_env


def cmd_build(driver: Driver, args: argparse.Namespace) -> int:
    package = driver.load(args.directory)
    result = driver.build(package)
    print(
        f"Built {package.key} ({driver.settings.profile}): "
        f"{len(result.report.executed)} task(s) run, {len(result.report.fresh)} up to date"
    )
    return 0


def cmd_run(driver: Driver, args: argparse.Namespace) -> int:
    package = driver.load(args.directory)
    driver.build(package)
    return driver.run(package)


def cmd_clean(driver: Driver, args: argparse.Namespace) -> int:
    package = driver.load(args.directory)
    if driver.clean(package):
        print(f"Removed {package.target_dir}")
    return 0


COMMANDS = {"build": cmd_build, "run": cmd_run, "clean": cmd_clean}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bob", description="Incremental polyglot build tool")
    sub = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("build", "Build the package and its dependencies"),
        ("run", "Build the package and run its artifact"),
        ("clean", "Remove the target directory"),
    ):
        command = sub.add_parser(name, help=help_text)
        command.add_argument(
            "-C",
            "--directory",
            type=Path,
            default=Path.cwd(),
            help="Package directory containing bob.toml",
        )
        command.add_argument("--release", action="store_true", help="Build with the release profile")
        command.add_argument("-j", "--jobs", type=int, default=None, help="Number of parallel tasks")
        command.add_argument("--target-dir", type=Path, default=None, help="Override target directory")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = settings_from_env().with_overrides(
            profile="release" if args.release else None,
            jobs=args.jobs,
            target_dir=args.target_dir,
        )
        driver = Driver(settings=settings)
        return COMMANDS[args.command](driver, args)
    except BobError as exc:
        print(f"error[{exc.code}]: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
