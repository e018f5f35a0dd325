"""Java backend: javac compile tasks per module, optional jar packaging, run actions.

Sources are grouped into modules (Java packages) by their path below a
recognized source root. Cross-module dependencies are inferred by scanning
sources for ``import`` statements; each compile task declares the class
output directory of every module it imports as an extra input, which lets the
generic task graph order and re-trigger dependent compiles. A Java package
split across build packages shares one class directory; see ``module_outputs``.
"""

from __future__ import annotations

import os
import re
import subprocess
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import networkx as nx

from bob.errors import ConfigurationError, ExecutionError, ScanError
from bob.graph import TaskGraph
from bob.models import Package
from bob.observability import StructuredLogger

SOURCE_ROOTS = ("src", "src-gen")
JAVA_SUFFIX = ".java"
MAIN_METHOD_PATTERN = re.compile(r"(public\s+)?static\s+void\s+main\s*\(")

ModuleKey = tuple[str, str]


@dataclass(slots=True)
class Module:
    """A Java package of one build package, with its member source files."""

    name: str
    package: Package
    source_files: list[Path] = field(default_factory=list)

    @property
    def key(self) -> ModuleKey:
        return (self.package.key, self.name)

    @property
    def output_dir(self) -> Path:
        return classes_dir(self.package) / self.name.replace(".", "/")


def classes_dir(package: Package) -> Path:
    return package.out_dir / "classes"


def jar_path(package: Package) -> Path:
    return package.out_dir / f"{package.name}-{package.version}.jar"


def class_name(source_file: Path, package: Package) -> str:
    """Return the fully qualified class name of *source_file*.

    The name is the file's path below the first ``src``/``src-gen`` component
    (relative to the package root), with separators turned into dots.
    """
    try:
        relative = source_file.relative_to(package.root)
    except ValueError:
        relative = source_file
    parts = relative.parts
    for position, part in enumerate(parts):
        if part in SOURCE_ROOTS and position + 1 < len(parts):
            qualified = list(parts[position + 1 :])
            break
    else:
        raise ConfigurationError(
            "Source file is not under a recognized source root.",
            hint=f"Place Java sources below one of: {', '.join(SOURCE_ROOTS)}.",
            context={"package": package.key, "file": str(source_file)},
        )
    qualified[-1] = qualified[-1].removesuffix(JAVA_SUFFIX)
    return ".".join(qualified)


def module_name(source_file: Path, package: Package) -> str:
    prefix, _, _ = class_name(source_file, package).rpartition(".")
    if not prefix:
        raise ConfigurationError(
            "Source file is not inside a Java package below its source root.",
            hint="Move the file into a package directory, e.g. src/com/example/.",
            context={"package": package.key, "file": str(source_file)},
        )
    return prefix


def find_modules(package: Package) -> list[Module]:
    """Collect modules of *package* and all its transitive dependencies, dependencies first."""
    modules: list[Module] = []
    for current in package.iter_packages():
        modules.extend(package_modules(current))
    return modules


def package_modules(package: Package) -> list[Module]:
    by_name: dict[str, Module] = {}
    for source_file in package.source_files:
        if source_file.suffix != JAVA_SUFFIX:
            continue
        name = module_name(source_file, package)
        by_name.setdefault(name, Module(name=name, package=package)).source_files.append(source_file)
    return list(by_name.values())


def read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ScanError(
            "Source file could not be read.",
            context={"operation": "scan", "file": str(path), "reason": str(exc)},
        ) from exc


def import_pattern(name: str) -> re.Pattern[str]:
    return re.compile(rf"\bimport\s+{re.escape(name)}\.(\w+|\*)\s*;")


def find_module_dependencies(
    modules: Sequence[Module],
    *,
    targets: Sequence[Module] | None = None,
    logger: StructuredLogger | None = None,
) -> dict[ModuleKey, list[Module]]:
    """Map each module key to the modules its sources import.

    Every module in *modules* is scanned against every differently named module
    in *targets* (all of *modules* by default). Unreadable files contribute
    nothing.
    """
    scope = list(targets) if targets is not None else list(modules)
    patterns = {target.name: import_pattern(target.name) for target in scope}
    dependencies: dict[ModuleKey, list[Module]] = {}
    for module in modules:
        contents = list(_scan_all(module.source_files, logger=logger, package=module.package))
        found: list[Module] = []
        for target in scope:
            if target.name == module.name:
                continue
            pattern = patterns[target.name]
            if any(pattern.search(text) for text in contents):
                found.append(target)
        dependencies[module.key] = found
    return dependencies


def find_main_classes(package: Package, *, logger: StructuredLogger | None = None) -> list[str]:
    """Return classes of *package* declaring a main method, in source enumeration order."""
    sources = [path for path in package.source_files if path.suffix == JAVA_SUFFIX]
    candidates: list[str] = []
    for path in sources:
        text = _scan(path, logger=logger, package=package)
        if text is not None and MAIN_METHOD_PATTERN.search(text):
            candidates.append(class_name(path, package))
    return candidates


def resolve_main_class(package: Package, *, logger: StructuredLogger | None = None) -> str:
    """Return the declared main class, or the first class found with a main method."""
    if package.jar is not None and package.jar.main_class:
        return package.jar.main_class
    candidates = find_main_classes(package, logger=logger)
    if not candidates:
        raise ConfigurationError(
            "Can't find a main class.",
            hint="Declare [package.metadata.jar] main_class or add a `static void main` method.",
            context={"package": package.key, "operation": "resolve_main_class"},
        )
    if len(candidates) > 1 and logger is not None:
        logger.log(
            operation="resolve_main_class",
            package=package.key,
            task=None,
            backend="java",
            message="Multiple main classes found; using the first one.",
            level="warning",
            extra={"selected": candidates[0], "candidates": candidates},
        )
    return candidates[0]


def runtime_classpath(package: Package) -> str:
    """Return own classes, dependency classes, then declared entries, joined by ``os.pathsep``."""
    entries = [str(classes_dir(package))]
    entries.extend(str(classes_dir(dependency)) for dependency in package.iter_dependencies())
    entries.extend(package.options.classpath)
    return os.pathsep.join(dict.fromkeys(entries))


def module_outputs(module: Module, graph: TaskGraph) -> list[Path]:
    """Return the paths *module*'s compile task declares as outputs.

    A module normally owns its whole class directory. When a module of the same
    name in another package already owns it, the module declares its own class
    files instead, so both packages can contribute to one Java package.
    """
    owner = graph.owner_of(module.output_dir)
    if owner is None or owner.package == module.package.key:
        return [module.output_dir]
    return [
        module.output_dir / f"{path.name.removesuffix(JAVA_SUFFIX)}.class"
        for path in module.source_files
    ]


def compile_units(
    modules: Sequence[Module],
    dependencies: Mapping[ModuleKey, Sequence[Module]],
) -> list[list[Module]]:
    """Group *modules* into compile units; mutually importing modules share a unit.

    Units are the strongly connected components of the import graph restricted
    to *modules*, ordered by the position of their first member.
    """
    position = {module.key: index for index, module in enumerate(modules)}
    digraph = nx.DiGraph()
    digraph.add_nodes_from(position)
    for module in modules:
        for dependency in dependencies.get(module.key, ()):
            if dependency.key in position:
                digraph.add_edge(module.key, dependency.key)
    units = [
        sorted((modules[position[key]] for key in component), key=lambda m: position[m.key])
        for component in nx.strongly_connected_components(digraph)
    ]
    units.sort(key=lambda unit: position[unit[0].key])
    return units


@dataclass(slots=True)
class JavaBackend:
    name: str = "java"
    javac: str = "javac"
    jar: str = "jar"
    java: str = "java"
    logger: StructuredLogger = field(default_factory=StructuredLogger)

    def detect(self, package: Package) -> bool:
        if package.jar is not None:
            return True
        return any(path.suffix == JAVA_SUFFIX for path in package.source_files)

    def generate_tasks(self, package: Package, graph: TaskGraph) -> None:
        modules = find_modules(package)
        self.generate_javac_tasks(package, graph, modules)
        if package.jar is not None:
            self.generate_jar_task(package, graph, modules)

    def generate_javac_tasks(
        self,
        package: Package,
        graph: TaskGraph,
        modules: Sequence[Module],
    ) -> None:
        own_modules = [module for module in modules if module.package.key == package.key]
        dependencies = find_module_dependencies(own_modules, targets=modules, logger=self.logger)
        flags = self.javac_flags(package)
        classpath = runtime_classpath(package)

        for unit in compile_units(own_modules, dependencies):
            unit_keys = {module.key for module in unit}
            sources = [path for module in unit for path in module.source_files]
            inputs: list[Path] = list(sources)
            outputs: list[Path] = []
            for module in unit:
                outputs.extend(module_outputs(module, graph))
                # Sources of a module shared with a dependency package compile
                # against that package's classes of the same Java package.
                same_name = [
                    other for other in modules if other.name == module.name and other.key != module.key
                ]
                related = [*dependencies[module.key], *same_name]
                for dependency in related:
                    if dependency.key in unit_keys:
                        continue
                    for path in module_outputs(dependency, graph):
                        if path not in inputs:
                            inputs.append(path)
            graph.add_task(
                (
                    self.javac,
                    *flags,
                    "-cp",
                    classpath,
                    "-d",
                    str(classes_dir(package)),
                    *(str(path) for path in sources),
                ),
                inputs,
                outputs,
                label=f"javac {', '.join(module.name for module in unit)}",
                package=package.key,
            )
        self.logger.log(
            operation="generate_tasks",
            package=package.key,
            task=None,
            backend=self.name,
            message="Generated javac tasks.",
            extra={"modules": [module.name for module in own_modules]},
        )

    def generate_jar_task(
        self,
        package: Package,
        graph: TaskGraph,
        modules: Sequence[Module],
    ) -> None:
        main_class = resolve_main_class(package, logger=self.logger)
        target = jar_path(package)
        command = [self.jar, "cfe", str(target), main_class]
        for directory in _classes_dirs(package):
            command.extend(("-C", str(directory), "."))
        graph.add_task(
            command,
            [path for module in modules for path in module_outputs(module, graph)],
            [target],
            label=f"jar {target.name}",
            package=package.key,
        )

    def javac_flags(self, package: Package) -> tuple[str, ...]:
        debug_flag = "-g:none" if package.profile == "release" else "-g"
        return ("-Xlint", "-Werror", debug_flag, *package.options.javac_flags)

    def run(self, package: Package) -> int:
        if package.jar is not None:
            command = [self.java, "-jar", str(jar_path(package))]
        else:
            command = [
                self.java,
                "-cp",
                runtime_classpath(package),
                resolve_main_class(package, logger=self.logger),
            ]
        self.logger.log(
            operation="run_artifact",
            package=package.key,
            task=None,
            backend=self.name,
            message="Launching artifact.",
            extra={"command": command},
        )
        try:
            result = subprocess.run(command, check=False)
        except OSError as exc:
            raise ExecutionError(
                f"Failed to execute `{self.java}`.",
                hint="Install a Java runtime and ensure it is available in PATH.",
                context={"operation": "run", "package": package.key, "reason": str(exc)},
            ) from exc
        # Negative return codes mean the child was killed by a signal.
        return result.returncode if result.returncode >= 0 else 1


def _classes_dirs(package: Package) -> list[Path]:
    directories = [classes_dir(current) for current in (package, *package.iter_dependencies())]
    return list(dict.fromkeys(directories))


def _scan(path: Path, *, logger: StructuredLogger | None, package: Package) -> str | None:
    try:
        return read_source(path)
    except ScanError as exc:
        if logger is not None:
            logger.log(
                operation="scan_skipped",
                package=package.key,
                task=None,
                backend="java",
                message="Skipping unreadable source file.",
                level="warning",
                extra=dict(exc.context),
            )
        return None


def _scan_all(
    paths: Iterable[Path],
    *,
    logger: StructuredLogger | None,
    package: Package,
) -> Iterable[str]:
    for path in paths:
        text = _scan(path, logger=logger, package=package)
        if text is not None:
            yield text
