"""Manifest (``bob.toml``) parser and package tree resolver."""

from __future__ import annotations

import shlex
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from bob.errors import ConfigurationError
from bob.models import BuildOptions, JarMetadata, Package, Profile

MANIFEST_NAME = "bob.toml"
SOURCE_DIRS = ("src", "src-gen")


@dataclass(frozen=True, slots=True)
class DependencySpec:
    name: str
    path: Path


@dataclass(frozen=True, slots=True)
class Manifest:
    name: str
    version: str
    root: Path
    build: BuildOptions = field(default_factory=BuildOptions)
    jar: JarMetadata | None = None
    dependencies: tuple[DependencySpec, ...] = ()


def parse_manifest(raw: str, *, root: Path) -> Manifest:
    try:
        payload = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(
            "Invalid manifest TOML.",
            hint=str(exc),
            context={"path": str(root / MANIFEST_NAME)},
        ) from exc

    package = _required_table(payload, "package", root=root)
    name = _required_str(package, "name", root=root)
    version = _required_str(package, "version", root=root)

    jar: JarMetadata | None = None
    metadata = _optional_table(package, "metadata", root=root)
    if "jar" in metadata:
        jar_table = _optional_table(metadata, "jar", root=root)
        main_class = jar_table.get("main_class")
        if main_class is not None and not isinstance(main_class, str):
            raise _invalid("package.metadata.jar.main_class", root=root)
        jar = JarMetadata(main_class=main_class or None)

    return Manifest(
        name=name,
        version=version,
        root=root,
        build=_parse_build(_optional_table(payload, "build", root=root), root=root),
        jar=jar,
        dependencies=_parse_dependencies(_optional_table(payload, "dependencies", root=root), root=root),
    )


def read_manifest(directory: str | Path) -> Manifest:
    root = Path(directory).absolute()
    manifest_path = root / MANIFEST_NAME
    try:
        raw = manifest_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(
            "Manifest does not exist.",
            hint=f"Create a {MANIFEST_NAME} with a [package] table.",
            context={"path": str(manifest_path)},
        ) from exc
    return parse_manifest(raw, root=root)


def discover_sources(root: Path) -> tuple[Path, ...]:
    """Return every file under the package's source directories, in sorted order."""
    sources: list[Path] = []
    for directory in SOURCE_DIRS:
        source_dir = root / directory
        if source_dir.is_dir():
            sources.extend(sorted(path for path in source_dir.rglob("*") if path.is_file()))
    return tuple(sources)


def resolve_package(
    directory: str | Path,
    *,
    profile: Profile = "debug",
    target_dir: Path | None = None,
) -> Package:
    """Load the manifest in *directory* and resolve its whole dependency tree.

    Every package of the tree shares the root package's target directory.
    A package depending on itself, directly or transitively, is rejected.
    """
    root = Path(directory).absolute()
    shared_target = (target_dir if target_dir is not None else root / "target").absolute()
    resolved: dict[Path, Package] = {}
    return _resolve(root, profile=profile, target_dir=shared_target, resolved=resolved, stack=[])


def _resolve(
    root: Path,
    *,
    profile: Profile,
    target_dir: Path,
    resolved: dict[Path, Package],
    stack: list[tuple[Path, str]],
) -> Package:
    key = root.resolve()
    if key in resolved:
        return resolved[key]
    manifest = read_manifest(root)
    visiting = [path for path, _ in stack]
    if key in visiting:
        chain = [name for _, name in stack[visiting.index(key) :]] + [manifest.name]
        raise ConfigurationError(
            "Package dependencies form a cycle.",
            hint="A package may not depend on itself, directly or transitively.",
            context={"operation": "resolve_package", "cycle": " -> ".join(chain)},
        )

    stack.append((key, manifest.name))
    dependencies: list[Package] = []
    for spec in manifest.dependencies:
        dependency = _resolve(
            spec.path,
            profile=profile,
            target_dir=target_dir,
            resolved=resolved,
            stack=stack,
        )
        if dependency.name != spec.name:
            raise ConfigurationError(
                "Dependency name does not match its manifest.",
                context={
                    "package": manifest.name,
                    "declared": spec.name,
                    "found": dependency.name,
                    "path": str(spec.path),
                },
            )
        dependencies.append(dependency)
    stack.pop()

    package = Package(
        name=manifest.name,
        version=manifest.version,
        root=root,
        target_dir=target_dir,
        profile=profile,
        options=manifest.build,
        jar=manifest.jar,
        source_files=discover_sources(root),
        dependencies=tuple(dependencies),
    )
    resolved[key] = package
    return package


def _parse_build(table: dict[str, Any], *, root: Path) -> BuildOptions:
    raw_flags = table.get("javac_flags", ())
    if isinstance(raw_flags, str):
        javac_flags = tuple(shlex.split(raw_flags))
    elif isinstance(raw_flags, list | tuple) and all(isinstance(item, str) for item in raw_flags):
        javac_flags = tuple(raw_flags)
    else:
        raise _invalid("build.javac_flags", root=root)

    raw_classpath = table.get("classpath", [])
    if not isinstance(raw_classpath, list) or not all(isinstance(item, str) for item in raw_classpath):
        raise _invalid("build.classpath", root=root)
    classpath = tuple(str(root / entry) for entry in raw_classpath)

    extra = {
        key: str(value) for key, value in table.items() if key not in ("javac_flags", "classpath")
    }
    return BuildOptions(javac_flags=javac_flags, classpath=classpath, extra=extra)


def _parse_dependencies(table: dict[str, Any], *, root: Path) -> tuple[DependencySpec, ...]:
    specs: list[DependencySpec] = []
    for name, value in table.items():
        if not isinstance(value, dict) or not isinstance(value.get("path"), str):
            raise ConfigurationError(
                f"Invalid dependency `{name}`.",
                hint='Declare path dependencies as `name = { path = "../name" }`.',
                context={"path": str(root / MANIFEST_NAME)},
            )
        specs.append(DependencySpec(name=name, path=(root / value["path"]).absolute()))
    return tuple(specs)


def _required_table(payload: dict[str, Any], key: str, *, root: Path) -> dict[str, Any]:
    value = payload.get(key)
    if not isinstance(value, dict):
        raise _invalid(key, root=root)
    return value


def _optional_table(payload: dict[str, Any], key: str, *, root: Path) -> dict[str, Any]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise _invalid(key, root=root)
    return value


def _required_str(payload: dict[str, Any], key: str, *, root: Path) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise _invalid(f"package.{key}", root=root)
    return value


def _invalid(key: str, *, root: Path) -> ConfigurationError:
    return ConfigurationError(
        f"Invalid manifest `{key}` value.",
        context={"path": str(root / MANIFEST_NAME)},
    )


__all__ = [
    "MANIFEST_NAME",
    "DependencySpec",
    "Manifest",
    "discover_sources",
    "parse_manifest",
    "read_manifest",
    "resolve_package",
]
