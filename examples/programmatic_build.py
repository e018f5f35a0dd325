"""Plan and build the hello-java example through the Python API.

Usage:
    python examples/programmatic_build.py [--release] [--plan-only]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from bob import ConfigurationError, Driver, ExecutionError, Settings

EXAMPLE_DIR = Path(__file__).resolve().parent / "hello-java" / "app"


def main() -> int:
    parser = argparse.ArgumentParser(description="Build the hello-java example")
    parser.add_argument("--release", action="store_true", help="Use the release profile")
    parser.add_argument("--plan-only", action="store_true", help="Print the task plan and exit")
    args = parser.parse_args()

    driver = Driver(settings=Settings(profile="release" if args.release else "debug"))
    package = driver.load(EXAMPLE_DIR)

    graph = driver.plan(package)
    for task in graph.topological_order():
        deps = ", ".join(dep.name for dep in graph.dependencies(task)) or "-"
        print(f"{task.name:<40} after: {deps}")
    if args.plan_only:
        return 0

    try:
        result = driver.build(package)
    except (ConfigurationError, ExecutionError) as exc:
        print(exc, file=sys.stderr)
        return 1
    print(f"{len(result.report.executed)} task(s) run, log at {result.log_path}")
    return driver.run(package)


if __name__ == "__main__":
    sys.exit(main())
