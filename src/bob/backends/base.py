"""Protocol for language backends and the ordered backend registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Self, runtime_checkable

from bob.graph import TaskGraph
from bob.models import Package


@runtime_checkable
class LanguageBackend(Protocol):
    name: str

    def detect(self, package: Package) -> bool:
        """Return whether this backend applies to *package*; must be cheap and side-effect free."""

    def generate_tasks(self, package: Package, graph: TaskGraph) -> None:
        """Append this package's tasks to *graph*; dependency packages are already generated."""


@runtime_checkable
class RunnableBackend(LanguageBackend, Protocol):
    """Optional protocol for backends that can launch the artifact they built."""

    def run(self, package: Package) -> int:
        """Run the built artifact in the foreground and return its exit code."""


@dataclass(slots=True)
class BackendRegistry:
    backends: list[LanguageBackend] = field(default_factory=list)

    def register(self, backend: LanguageBackend) -> Self:
        self.backends.append(backend)
        return self

    def applicable(self, package: Package) -> tuple[LanguageBackend, ...]:
        """Return every registered backend that detects *package*, in registration order."""
        return tuple(backend for backend in self.backends if backend.detect(package))

    def runner_for(self, package: Package) -> RunnableBackend | None:
        for backend in self.applicable(package):
            if isinstance(backend, RunnableBackend):
                return backend
        return None
