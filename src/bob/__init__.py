"""Public package entrypoint for the bob build engine."""

from .backends import BackendRegistry, JavaBackend, LanguageBackend, RunnableBackend
from .driver import BuildResult, Driver
from .errors import BobError, ConfigurationError, ErrorCode, ExecutionError, ScanError
from .executor import Executor, RunReport, TaskState
from .graph import Task, TaskGraph
from .models import BuildOptions, JarMetadata, Package, Profile
from .observability import StructuredLogger
from .settings import Settings

__all__ = [
    "BackendRegistry",
    "BobError",
    "BuildOptions",
    "BuildResult",
    "ConfigurationError",
    "Driver",
    "ErrorCode",
    "ExecutionError",
    "Executor",
    "JarMetadata",
    "JavaBackend",
    "LanguageBackend",
    "Package",
    "Profile",
    "RunReport",
    "RunnableBackend",
    "ScanError",
    "Settings",
    "StructuredLogger",
    "Task",
    "TaskGraph",
    "TaskState",
]
