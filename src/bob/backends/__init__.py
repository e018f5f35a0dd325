"""Language backend interfaces and implementations."""

from bob.observability import StructuredLogger

from .base import BackendRegistry, LanguageBackend, RunnableBackend
from .java import JavaBackend, Module


def default_registry(logger: StructuredLogger | None = None) -> BackendRegistry:
    """Return a registry holding the built-in backends."""
    java = JavaBackend() if logger is None else JavaBackend(logger=logger)
    return BackendRegistry().register(java)


__all__ = [
    "BackendRegistry",
    "JavaBackend",
    "LanguageBackend",
    "Module",
    "RunnableBackend",
    "default_registry",
]
