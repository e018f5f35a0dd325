"""Build driver: package tree in, task graph populated and executed, artifact run."""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from bob.backends import BackendRegistry, default_registry
from bob.errors import ConfigurationError
from bob.executor import Executor, RunReport
from bob.graph import TaskGraph
from bob.manifest import resolve_package
from bob.models import Package
from bob.observability import StructuredLogger
from bob.settings import Settings

BUILD_LOG_NAME = "build-log.jsonl"


@dataclass(slots=True)
class BuildResult:
    package: Package
    graph: TaskGraph
    report: RunReport
    log_path: Path


@dataclass(slots=True)
class Driver:
    settings: Settings = field(default_factory=Settings)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    backends: BackendRegistry | None = None
    registry: BackendRegistry = field(init=False, repr=False)
    _last_build_result: BuildResult | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        self.registry = self.backends if self.backends is not None else default_registry(self.logger)

    @property
    def last_build_result(self) -> BuildResult | None:
        return self._last_build_result

    def load(self, directory: str | Path) -> Package:
        return resolve_package(
            directory,
            profile=self.settings.profile,
            target_dir=self.settings.target_dir,
        )

    def plan(self, package: Package) -> TaskGraph:
        """Let every applicable backend add tasks, dependency packages first."""
        graph = TaskGraph()
        for current in package.iter_packages():
            backends = self.registry.applicable(current)
            for backend in backends:
                backend.generate_tasks(current, graph)
            self.logger.log(
                operation="plan_package",
                package=current.key,
                task=None,
                backend=None,
                message="Planned package.",
                extra={"backends": [backend.name for backend in backends]},
            )
        graph.validate()
        return graph

    def build(self, package: Package) -> BuildResult:
        """Plan and execute *package*; the build log is written even when the build fails."""
        graph = self.plan(package)
        executor = Executor(jobs=self.settings.jobs, logger=self.logger)
        log_path = package.out_dir / BUILD_LOG_NAME
        try:
            report = executor.run(graph)
            self.logger.log(
                operation="build_complete",
                package=package.key,
                task=None,
                backend=None,
                message="Build complete.",
                extra={"executed": len(report.executed), "fresh": len(report.fresh)},
            )
        finally:
            self.logger.to_json_lines(log_path)
        result = BuildResult(package=package, graph=graph, report=report, log_path=log_path)
        self._last_build_result = result
        return result

    def run(self, package: Package) -> int:
        """Launch the artifact of an already built *package* and return its exit code."""
        runner = self.registry.runner_for(package)
        if runner is None:
            raise ConfigurationError(
                "No backend can run this package.",
                hint="Only packages handled by a runnable backend (e.g. Java) can be run.",
                context={"operation": "run", "package": package.key},
            )
        return runner.run(package)

    def clean(self, package: Package) -> bool:
        """Remove the shared target directory; return whether anything was removed."""
        if not package.target_dir.exists():
            return False
        shutil.rmtree(package.target_dir)
        self.logger.log(
            operation="clean",
            package=package.key,
            task=None,
            backend=None,
            message="Removed target directory.",
            extra={"target_dir": str(package.target_dir)},
        )
        return True


__all__ = ["BUILD_LOG_NAME", "BuildResult", "Driver"]
