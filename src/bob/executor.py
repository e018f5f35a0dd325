"""Incremental task execution with a bounded worker pool.

Tasks are dispatched once every task they depend on is fresh or has
succeeded. Staleness is decided at dispatch time, so a task whose upstream
outputs were just rewritten sees their new modification times.
"""

from __future__ import annotations

import heapq
import os
import subprocess
from collections.abc import Iterable, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from bob.errors import ConfigurationError, ExecutionError
from bob.graph import Task, TaskGraph
from bob.observability import StructuredLogger

OUTPUT_PREVIEW_LIMIT = 2000


class TaskState(StrEnum):
    PENDING = "pending"
    FRESH = "fresh"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class RunReport:
    states: dict[int, TaskState] = field(default_factory=dict)
    executed: list[Task] = field(default_factory=list)
    fresh: list[Task] = field(default_factory=list)
    failure: ExecutionError | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def state_of(self, task: Task) -> TaskState:
        return self.states[task.index]


def default_jobs() -> int:
    return os.cpu_count() or 1


def _newest_file_mtime(path: Path, exclude: frozenset[Path]) -> int | None:
    newest: int | None = None
    for dirpath, dirnames, filenames in os.walk(path):
        current = Path(dirpath)
        dirnames[:] = [name for name in dirnames if current / name not in exclude]
        for name in filenames:
            member = current / name
            if member in exclude:
                continue
            try:
                mtime = member.stat().st_mtime_ns
            except FileNotFoundError:
                continue
            if newest is None or mtime > newest:
                newest = mtime
    return newest


def newest_mtime(path: Path, exclude: Iterable[Path] = ()) -> int | None:
    """Return the newest modification time (ns) of *path*, recursing into directories.

    A directory is as new as its newest file; subtrees listed in *exclude* are
    skipped. An empty directory reports its own time. Returns ``None`` when the
    path does not exist.
    """
    try:
        own = path.stat().st_mtime_ns
    except FileNotFoundError:
        return None
    if not path.is_dir():
        return own
    newest = _newest_file_mtime(path, frozenset(exclude))
    return own if newest is None else newest


def _output_mtime(path: Path, exclude: Iterable[Path]) -> int | None:
    # An output directory holding none of its own files has not been produced yet.
    if path.is_dir():
        return _newest_file_mtime(path, frozenset(exclude))
    return newest_mtime(path)


def is_stale(task: Task, graph: TaskGraph | None = None) -> bool:
    """Decide whether *task* has to run.

    A task without outputs always runs. Otherwise it runs when an output is
    missing, an input is missing, or an input is newer than the oldest output.
    With *graph* given, outputs other tasks declare below a path are left out
    of that path's time, so nested output directories stay independent.
    """
    if not task.outputs:
        return True
    output_times: list[int] = []
    for output in task.outputs:
        hidden = graph.foreign_outputs_under(output, owner=task) if graph is not None else ()
        mtime = _output_mtime(output, hidden)
        if mtime is None:
            return True
        output_times.append(mtime)
    oldest_output = min(output_times)
    for input_path in task.inputs:
        hidden = ()
        if graph is not None:
            producers = graph.producers_of(input_path)
            hidden = graph.foreign_outputs_under(
                input_path, owner=producers[0] if producers else None
            )
        mtime = newest_mtime(input_path, hidden)
        if mtime is None or mtime > oldest_output:
            return True
    return False


@dataclass(slots=True)
class Executor:
    jobs: int = field(default_factory=default_jobs)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    env: Mapping[str, str] | None = None
    last_report: RunReport | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        if self.jobs < 1:
            raise ConfigurationError(
                "Worker count must be at least 1.",
                context={"operation": "executor", "jobs": str(self.jobs)},
            )

    def run(self, graph: TaskGraph) -> RunReport:
        """Execute every stale task of *graph*; raise ``ExecutionError`` on the first failure.

        Cycles are rejected before anything runs. After a failure no further
        task is started; tasks already running are allowed to finish.
        """
        digraph = graph.validate()
        tasks = graph.tasks
        report = RunReport(states={task.index: TaskState.PENDING for task in tasks})
        self.last_report = report

        waiting = {index: digraph.in_degree(index) for index in digraph.nodes}
        ready = [index for index, count in waiting.items() if count == 0]
        heapq.heapify(ready)

        def release(index: int) -> None:
            for successor in digraph.successors(index):
                waiting[successor] -= 1
                if waiting[successor] == 0:
                    heapq.heappush(ready, successor)

        with ThreadPoolExecutor(max_workers=self.jobs, thread_name_prefix="bob-task") as pool:
            in_flight: dict[Future[None], int] = {}
            while True:
                while ready and report.failure is None and len(in_flight) < self.jobs:
                    index = heapq.heappop(ready)
                    task = tasks[index]
                    if not is_stale(task, graph):
                        report.states[index] = TaskState.FRESH
                        report.fresh.append(task)
                        self._log(task, "task_fresh", "Task is up to date.", level="debug")
                        release(index)
                        continue
                    report.states[index] = TaskState.RUNNING
                    self._log(task, "task_start", "Running task.")
                    in_flight[pool.submit(self._execute, task)] = index

                if not in_flight:
                    break

                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in sorted(done, key=in_flight.__getitem__):
                    index = in_flight.pop(future)
                    task = tasks[index]
                    error = future.exception()
                    if error is None:
                        report.states[index] = TaskState.SUCCEEDED
                        report.executed.append(task)
                        release(index)
                        continue
                    report.states[index] = TaskState.FAILED
                    if not isinstance(error, ExecutionError):
                        raise error
                    self._log(task, "task_failed", str(error), level="error")
                    if report.failure is None:
                        report.failure = error

        if report.failure is not None:
            raise report.failure
        return report

    def _execute(self, task: Task) -> None:
        for output in task.outputs:
            output.parent.mkdir(parents=True, exist_ok=True)
        try:
            result = subprocess.run(
                list(task.command),
                capture_output=True,
                text=True,
                check=False,
                env=dict(self.env) if self.env is not None else None,
            )
        except OSError as exc:
            raise ExecutionError(
                f"Task executable `{task.command[0]}` could not be started.",
                hint="Install the toolchain and ensure it is available in PATH.",
                context={
                    "operation": "run_task",
                    "task": task.name,
                    "command": task.display,
                    "reason": str(exc),
                },
            ) from exc

        if result.returncode != 0:
            raise ExecutionError(
                "Task failed.",
                hint="Check the task output for details.",
                context={
                    "operation": "run_task",
                    "task": task.name,
                    "command": task.display,
                    "returncode": str(result.returncode),
                    "stdout": result.stdout[:OUTPUT_PREVIEW_LIMIT] if result.stdout else "",
                    "stderr": result.stderr[:OUTPUT_PREVIEW_LIMIT] if result.stderr else "",
                },
            )

        extra: dict[str, object] = {"returncode": result.returncode}
        if result.stderr:
            extra["stderr"] = result.stderr[:OUTPUT_PREVIEW_LIMIT]
        self._log(task, "task_succeeded", "Task succeeded.", extra=extra)

    def _log(
        self,
        task: Task,
        operation: str,
        message: str,
        *,
        level: str = "info",
        extra: dict[str, object] | None = None,
    ) -> None:
        self.logger.log(
            operation=operation,
            package=task.package,
            task=task.name,
            backend=None,
            message=message,
            level=level,
            extra=extra,
        )


__all__ = [
    "Executor",
    "RunReport",
    "TaskState",
    "default_jobs",
    "is_stale",
    "newest_mtime",
]
