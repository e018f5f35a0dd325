"""Shared test fixtures."""

from __future__ import annotations

import os
import sys
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import pytest

from bob.models import Package

# Seconds since the epoch, far enough in the past that anything a task writes is newer.
BASE_TIME = 1_000_000_000

WRITE_SCRIPT = (
    "import pathlib, sys\n"
    "for target in sys.argv[1:]:\n"
    "    path = pathlib.Path(target)\n"
    "    path.parent.mkdir(parents=True, exist_ok=True)\n"
    "    path.write_text('built\\n')\n"
)


def write_command(*outputs: Path) -> tuple[str, ...]:
    """Command that writes every path in *outputs*."""
    return (sys.executable, "-c", WRITE_SCRIPT, *(str(path) for path in outputs))


def python_command(code: str, *args: str) -> tuple[str, ...]:
    return (sys.executable, "-c", code, *args)


def set_mtime(path: Path, seconds: int) -> None:
    os.utime(path, (seconds, seconds))


@pytest.fixture
def make_package(tmp_path: Path) -> Callable[..., Package]:
    """Factory writing source files below a package root and returning the Package."""

    def factory(
        name: str = "app",
        files: Mapping[str, str] | None = None,
        *,
        root: Path | None = None,
        **kwargs: Any,
    ) -> Package:
        package_root = root if root is not None else tmp_path / name
        sources: list[Path] = []
        for relative, content in (files or {}).items():
            path = package_root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            sources.append(path)
        kwargs.setdefault("target_dir", package_root / "target")
        return Package(
            name=name,
            version="1.0.0",
            root=package_root,
            source_files=tuple(sources),
            **kwargs,
        )

    return factory


@pytest.fixture
def write_manifest(tmp_path: Path) -> Callable[..., Path]:
    """Factory creating a package directory holding a bob.toml and optional sources."""

    def factory(
        directory: str,
        manifest: str,
        files: Mapping[str, str] | None = None,
    ) -> Path:
        root = tmp_path / directory
        root.mkdir(parents=True, exist_ok=True)
        (root / "bob.toml").write_text(manifest, encoding="utf-8")
        for relative, content in (files or {}).items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return root

    return factory
