from collections.abc import Callable
from pathlib import Path

import pytest

from bob.errors import ConfigurationError
from bob.manifest import discover_sources, parse_manifest, read_manifest, resolve_package
from bob.models import JarMetadata

WriteManifest = Callable[..., Path]


def _manifest(name: str, *, extra: str = "", dependencies: dict[str, str] | None = None) -> str:
    text = f'[package]\nname = "{name}"\nversion = "0.1.0"\n{extra}'
    if dependencies:
        text += "\n[dependencies]\n"
        for dep_name, path in dependencies.items():
            text += f'{dep_name} = {{ path = "{path}" }}\n'
    return text


def test_parse_manifest_reads_package_build_and_jar(tmp_path: Path) -> None:
    manifest = parse_manifest(
        """
[package]
name = "hello"
version = "1.2.0"

[package.metadata.jar]
main_class = "com.example.Main"

[build]
javac_flags = "--release 17 -parameters"
classpath = ["lib/dep.jar"]
encoding = "UTF-8"

[dependencies]
util = { path = "../util" }
""",
        root=tmp_path,
    )

    assert (manifest.name, manifest.version) == ("hello", "1.2.0")
    assert manifest.jar == JarMetadata(main_class="com.example.Main")
    assert manifest.build.javac_flags == ("--release", "17", "-parameters")
    assert manifest.build.classpath == (str(tmp_path / "lib" / "dep.jar"),)
    assert manifest.build.extra == {"encoding": "UTF-8"}
    assert [(spec.name, spec.path) for spec in manifest.dependencies] == [
        ("util", (tmp_path / ".." / "util").absolute()),
    ]


def test_empty_jar_table_enables_packaging(tmp_path: Path) -> None:
    manifest = parse_manifest(_manifest("app", extra="\n[package.metadata.jar]\n"), root=tmp_path)
    assert manifest.jar == JarMetadata(main_class=None)
    assert parse_manifest(_manifest("app"), root=tmp_path).jar is None


def test_javac_flags_accept_a_list(tmp_path: Path) -> None:
    manifest = parse_manifest(_manifest("app", extra='\n[build]\njavac_flags = ["-nowarn"]\n'), root=tmp_path)
    assert manifest.build.javac_flags == ("-nowarn",)


@pytest.mark.parametrize(
    "raw",
    [
        "not toml = = =",
        '[package]\nversion = "1.0"\n',
        '[package]\nname = "x"\n',
        '[package]\nname = "x"\nversion = "1"\n[build]\nclasspath = "lib.jar"\n',
        '[package]\nname = "x"\nversion = "1"\n[dependencies]\nutil = "1.0"\n',
    ],
)
def test_invalid_manifests_are_configuration_errors(tmp_path: Path, raw: str) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        parse_manifest(raw, root=tmp_path)
    assert excinfo.value.code == "E_CONFIGURATION"


def test_missing_manifest_has_hint(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        read_manifest(tmp_path)
    assert excinfo.value.hint is not None


def test_sources_are_discovered_in_sorted_order(write_manifest: WriteManifest) -> None:
    root = write_manifest(
        "app",
        _manifest("app"),
        {
            "src/b/Z.java": "",
            "src/a/Y.java": "",
            "src-gen/g/G.java": "",
            "docs/README.md": "",
        },
    )

    assert [path.relative_to(root).as_posix() for path in discover_sources(root)] == [
        "src/a/Y.java",
        "src/b/Z.java",
        "src-gen/g/G.java",
    ]


def test_resolve_package_shares_target_dir_and_dependencies(write_manifest: WriteManifest) -> None:
    write_manifest("core", _manifest("core"))
    write_manifest("left", _manifest("left", dependencies={"core": "../core"}))
    write_manifest("right", _manifest("right", dependencies={"core": "../core"}))
    app_root = write_manifest("app", _manifest("app", dependencies={"left": "../left", "right": "../right"}))

    package = resolve_package(app_root, profile="release")

    left, right = package.dependencies
    assert left.dependencies[0] is right.dependencies[0]
    assert {current.target_dir for current in package.iter_packages()} == {app_root / "target"}
    assert all(current.profile == "release" for current in package.iter_packages())
    assert [current.name for current in package.iter_packages()] == ["core", "left", "right", "app"]


def test_package_cycle_is_a_configuration_error(write_manifest: WriteManifest) -> None:
    write_manifest("a", _manifest("a", dependencies={"b": "../b"}))
    write_manifest("b", _manifest("b", dependencies={"c": "../c"}))
    write_manifest("c", _manifest("c", dependencies={"a": "../a"}))

    with pytest.raises(ConfigurationError) as excinfo:
        resolve_package(write_manifest("a", _manifest("a", dependencies={"b": "../b"})))

    assert excinfo.value.context["cycle"] == "a -> b -> c -> a"


def test_self_dependency_is_a_configuration_error(write_manifest: WriteManifest) -> None:
    root = write_manifest("solo", _manifest("solo", dependencies={"solo": "."}))
    with pytest.raises(ConfigurationError):
        resolve_package(root)


def test_dependency_name_must_match_manifest(write_manifest: WriteManifest) -> None:
    write_manifest("core", _manifest("core"))
    root = write_manifest("app", _manifest("app", dependencies={"kernel": "../core"}))

    with pytest.raises(ConfigurationError) as excinfo:
        resolve_package(root)

    assert excinfo.value.context["found"] == "core"
