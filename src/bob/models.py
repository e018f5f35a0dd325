"""Core typed dataclasses for resolved packages and their derived paths."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

Profile = Literal["debug", "release"]

PROFILES: tuple[Profile, ...] = ("debug", "release")


@dataclass(frozen=True, slots=True)
class JarMetadata:
    """Packaging metadata; its presence on a package enables jar packaging."""

    main_class: str | None = None


@dataclass(frozen=True, slots=True)
class BuildOptions:
    """Declared build options consumed by language backends.

    ``extra`` holds free-form key/value settings from the manifest's
    ``[build]`` table that no built-in backend interprets.
    """

    javac_flags: tuple[str, ...] = ()
    classpath: tuple[str, ...] = ()
    extra: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Package:
    """One buildable unit with its resolved sources and dependency packages.

    Instances are built once per invocation by the manifest resolver and never
    mutated afterwards; backends and the executor only read them.
    """

    name: str
    version: str
    root: Path
    target_dir: Path
    profile: Profile = "debug"
    options: BuildOptions = field(default_factory=BuildOptions)
    jar: JarMetadata | None = None
    source_files: tuple[Path, ...] = ()
    dependencies: tuple[Package, ...] = ()

    @property
    def key(self) -> str:
        return f"{self.name}@{self.version}"

    @property
    def out_dir(self) -> Path:
        """Return ``{target_dir}/{profile}``, the root of all outputs for this profile."""
        return self.target_dir / self.profile

    def iter_dependencies(self) -> Iterator[Package]:
        """Yield transitive dependencies once each, dependencies before dependents."""
        seen: set[str] = set()
        yield from self._walk_dependencies(seen)

    def iter_packages(self) -> Iterator[Package]:
        """Yield transitive dependencies followed by this package itself."""
        yield from self.iter_dependencies()
        yield self

    def _walk_dependencies(self, seen: set[str]) -> Iterator[Package]:
        for dependency in self.dependencies:
            if dependency.key in seen:
                continue
            yield from dependency._walk_dependencies(seen)
            if dependency.key not in seen:
                seen.add(dependency.key)
                yield dependency


__all__ = [
    "PROFILES",
    "BuildOptions",
    "JarMetadata",
    "Package",
    "Profile",
]
