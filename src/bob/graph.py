"""Task graph: declared build actions and the edges derived from their paths.

A task depends on another task when one of its declared inputs equals, or lies
underneath, one of the other task's declared outputs; the nearest enclosing
output decides which task that is. Edges are never declared
explicitly; backends only describe commands, inputs and outputs.
"""

from __future__ import annotations

import os
import shlex
import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

import networkx as nx

from bob.errors import ConfigurationError


def normalize_path(path: str | os.PathLike[str]) -> Path:
    """Return an absolute, lexically normalized path without touching the filesystem."""
    return Path(os.path.abspath(os.fspath(path)))


@dataclass(frozen=True, slots=True)
class Task:
    index: int
    command: tuple[str, ...]
    inputs: tuple[Path, ...]
    outputs: tuple[Path, ...]
    label: str | None = None
    package: str | None = None

    @property
    def display(self) -> str:
        return shlex.join(self.command)

    @property
    def name(self) -> str:
        return self.label or self.display


class TaskGraph:
    """Append-only collection of tasks shared by every backend in one build.

    ``add_task`` may be called from several threads; output ownership is
    checked eagerly, cycles once all tasks are registered (see ``validate``).
    """

    def __init__(self) -> None:
        self._tasks: list[Task] = []
        self._owners: dict[Path, int] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._tasks)

    @property
    def tasks(self) -> tuple[Task, ...]:
        with self._lock:
            return tuple(self._tasks)

    def add_task(
        self,
        command: Sequence[str],
        inputs: Iterable[str | os.PathLike[str]],
        outputs: Iterable[str | os.PathLike[str]],
        *,
        label: str | None = None,
        package: str | None = None,
    ) -> Task:
        if not command:
            raise ConfigurationError(
                "Task command must not be empty.",
                context={"operation": "add_task", "label": label or ""},
            )
        normalized_inputs = _dedupe(normalize_path(path) for path in inputs)
        normalized_outputs = _dedupe(normalize_path(path) for path in outputs)

        with self._lock:
            index = len(self._tasks)
            task = Task(
                index=index,
                command=tuple(str(part) for part in command),
                inputs=normalized_inputs,
                outputs=normalized_outputs,
                label=label,
                package=package,
            )
            for output in normalized_outputs:
                owner = self._owners.get(output)
                if owner is not None:
                    raise ConfigurationError(
                        "Two tasks declare the same output path.",
                        hint="Every output must be written by exactly one task.",
                        context={
                            "operation": "add_task",
                            "output": str(output),
                            "existing_task": self._tasks[owner].name,
                            "new_task": task.name,
                        },
                    )
            for output in normalized_outputs:
                self._owners[output] = index
            self._tasks.append(task)
        return task

    def producers_of(self, path: str | os.PathLike[str]) -> tuple[Task, ...]:
        """Return the tasks whose outputs equal *path* or contain it, nearest first."""
        candidate = normalize_path(path)
        found: list[Task] = []
        with self._lock:
            for ancestor in (candidate, *candidate.parents):
                owner = self._owners.get(ancestor)
                if owner is not None:
                    found.append(self._tasks[owner])
        return tuple(found)

    def owner_of(self, path: str | os.PathLike[str]) -> Task | None:
        """Return the task declaring exactly *path* as an output, if any."""
        candidate = normalize_path(path)
        with self._lock:
            owner = self._owners.get(candidate)
            return self._tasks[owner] if owner is not None else None

    def foreign_outputs_under(
        self,
        path: str | os.PathLike[str],
        *,
        owner: Task | None,
    ) -> tuple[Path, ...]:
        """Return outputs strictly below *path* that belong to tasks other than *owner*.

        Such subtrees are written by someone else and say nothing about how
        current *path* itself is.
        """
        candidate = normalize_path(path)
        skip = owner.index if owner is not None else None
        with self._lock:
            return tuple(
                output
                for output, index in self._owners.items()
                if index != skip and output != candidate and output.is_relative_to(candidate)
            )

    def dependencies(self, task: Task) -> tuple[Task, ...]:
        """Return the distinct tasks *task* depends on, in registration order.

        Each input is attributed to the task owning the nearest enclosing
        output, so nested output directories do not imply edges to their
        enclosing directory's owner. Inputs under the task's own outputs are
        ignored.
        """
        indices: set[int] = set()
        for path in task.inputs:
            producers = self.producers_of(path)
            if producers and producers[0].index != task.index:
                indices.add(producers[0].index)
        tasks = self.tasks
        return tuple(tasks[index] for index in sorted(indices))

    def to_networkx(self) -> nx.DiGraph:
        """Build a directed graph with an edge ``producer -> consumer`` per derived dependency."""
        digraph = nx.DiGraph()
        for task in self.tasks:
            digraph.add_node(task.index, task=task)
        for task in self.tasks:
            for dependency in self.dependencies(task):
                digraph.add_edge(dependency.index, task.index)
        return digraph

    def validate(self) -> nx.DiGraph:
        """Reject dependency cycles and return the validated graph."""
        digraph = self.to_networkx()
        try:
            cycle = nx.find_cycle(digraph)
        except nx.NetworkXNoCycle:
            return digraph
        tasks = self.tasks
        names = [tasks[source].name for source, _ in cycle]
        names.append(tasks[cycle[0][0]].name)
        raise ConfigurationError(
            "Task dependencies form a cycle.",
            hint="A task may not consume, directly or transitively, its own outputs.",
            context={"operation": "validate", "cycle": " -> ".join(names)},
        )

    def topological_order(self) -> list[Task]:
        """Return all tasks in a deterministic dependency order, ties broken by registration."""
        digraph = self.validate()
        tasks = self.tasks
        return [tasks[index] for index in nx.lexicographical_topological_sort(digraph)]


def _dedupe(paths: Iterable[Path]) -> tuple[Path, ...]:
    return tuple(dict.fromkeys(paths))


__all__ = ["Task", "TaskGraph", "normalize_path"]
