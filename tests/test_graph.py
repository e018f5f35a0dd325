import threading
from pathlib import Path

import pytest

from bob.errors import ConfigurationError
from bob.graph import TaskGraph, normalize_path


def test_add_task_normalizes_and_deduplicates_paths(tmp_path: Path) -> None:
    graph = TaskGraph()
    task = graph.add_task(
        ("tool",),
        [tmp_path / "a" / ".." / "in.txt", tmp_path / "in.txt"],
        [tmp_path / "out.txt"],
        label="copy",
    )
    assert task.inputs == (tmp_path / "in.txt",)
    assert task.outputs == (tmp_path / "out.txt",)
    assert task.name == "copy"
    assert len(graph) == 1


def test_task_name_defaults_to_command_line() -> None:
    graph = TaskGraph()
    task = graph.add_task(("javac", "-d", "out dir"), [], [])
    assert task.name == "javac -d 'out dir'"


def test_empty_command_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        TaskGraph().add_task((), [], [])


def test_duplicate_output_is_a_configuration_error(tmp_path: Path) -> None:
    graph = TaskGraph()
    graph.add_task(("first",), [], [tmp_path / "out"])

    with pytest.raises(ConfigurationError) as excinfo:
        graph.add_task(("second",), [], [tmp_path / "sub" / ".." / "out"])

    assert excinfo.value.code == "E_CONFIGURATION"
    assert excinfo.value.context["output"] == str(tmp_path / "out")
    assert len(graph) == 1


def test_edges_are_derived_from_exact_and_contained_paths(tmp_path: Path) -> None:
    graph = TaskGraph()
    classes = graph.add_task(("compile",), [tmp_path / "A.java"], [tmp_path / "classes"])
    jar = graph.add_task(("jar",), [tmp_path / "classes"], [tmp_path / "app.jar"])
    inspect = graph.add_task(("inspect",), [tmp_path / "classes" / "A.class"], [tmp_path / "report"])

    assert graph.dependencies(classes) == ()
    assert graph.dependencies(jar) == (classes,)
    assert graph.dependencies(inspect) == (classes,)


def test_nearest_enclosing_output_owns_nested_paths(tmp_path: Path) -> None:
    graph = TaskGraph()
    outer = graph.add_task(("outer",), [tmp_path / "classes" / "a" / "b"], [tmp_path / "classes" / "a"])
    inner = graph.add_task(("inner",), [], [tmp_path / "classes" / "a" / "b"])
    consumer = graph.add_task(("consumer",), [tmp_path / "classes" / "a" / "b" / "X.class"], [tmp_path / "c"])

    assert graph.dependencies(outer) == (inner,)
    assert graph.dependencies(consumer) == (inner,)


def test_input_under_own_output_is_not_a_dependency(tmp_path: Path) -> None:
    graph = TaskGraph()
    task = graph.add_task(("gen",), [tmp_path / "gen" / "stamp"], [tmp_path / "gen"])
    assert graph.dependencies(task) == ()
    graph.validate()


def test_two_task_cycle_is_rejected(tmp_path: Path) -> None:
    graph = TaskGraph()
    graph.add_task(("one",), [tmp_path / "x"], [tmp_path / "y"], label="one")
    graph.add_task(("two",), [tmp_path / "y"], [tmp_path / "x"], label="two")

    with pytest.raises(ConfigurationError) as excinfo:
        graph.validate()

    assert "cycle" in str(excinfo.value)
    assert set(excinfo.value.context["cycle"].split(" -> ")) == {"one", "two"}


def test_three_task_cycle_is_rejected(tmp_path: Path) -> None:
    graph = TaskGraph()
    graph.add_task(("a",), [tmp_path / "c.out"], [tmp_path / "a.out"])
    graph.add_task(("b",), [tmp_path / "a.out"], [tmp_path / "b.out"])
    graph.add_task(("c",), [tmp_path / "b.out"], [tmp_path / "c.out"])

    with pytest.raises(ConfigurationError):
        graph.topological_order()


def test_topological_order_is_deterministic(tmp_path: Path) -> None:
    graph = TaskGraph()
    link = graph.add_task(("link",), [tmp_path / "a.o", tmp_path / "b.o"], [tmp_path / "app"])
    compile_b = graph.add_task(("cc", "b"), [tmp_path / "b.c"], [tmp_path / "b.o"])
    compile_a = graph.add_task(("cc", "a"), [tmp_path / "a.c"], [tmp_path / "a.o"])
    standalone = graph.add_task(("docs",), [], [tmp_path / "docs"])

    first = graph.topological_order()
    second = graph.topological_order()

    assert first == second
    assert first == [compile_b, compile_a, link, standalone]


def test_concurrent_add_task_assigns_unique_indices(tmp_path: Path) -> None:
    graph = TaskGraph()

    def register(worker: int) -> None:
        for item in range(50):
            graph.add_task(("touch",), [], [tmp_path / f"{worker}-{item}"])

    threads = [threading.Thread(target=register, args=(worker,)) for worker in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    indices = [task.index for task in graph.tasks]
    assert indices == list(range(200))


def test_producers_of_returns_nearest_first(tmp_path: Path) -> None:
    graph = TaskGraph()
    outer = graph.add_task(("outer",), [], [tmp_path / "out"])
    inner = graph.add_task(("inner",), [], [tmp_path / "out" / "nested"])

    assert graph.producers_of(tmp_path / "out" / "nested" / "f") == (inner, outer)
    assert graph.producers_of(tmp_path / "elsewhere") == ()
    assert normalize_path(tmp_path / "x" / "..") == tmp_path


def test_foreign_outputs_under_lists_other_tasks_nested_outputs(tmp_path: Path) -> None:
    graph = TaskGraph()
    outer = graph.add_task(
        ("outer",),
        [],
        [tmp_path / "classes" / "a", tmp_path / "classes" / "a" / "own"],
    )
    inner = graph.add_task(("inner",), [], [tmp_path / "classes" / "a" / "b"])
    loose = graph.add_task(("loose",), [], [tmp_path / "classes" / "a" / "Z.class"])

    assert graph.foreign_outputs_under(tmp_path / "classes" / "a", owner=outer) == (
        tmp_path / "classes" / "a" / "b",
        tmp_path / "classes" / "a" / "Z.class",
    )
    assert graph.foreign_outputs_under(tmp_path / "classes" / "a" / "b", owner=inner) == ()
    assert graph.foreign_outputs_under(tmp_path / "classes", owner=None) == (
        tmp_path / "classes" / "a",
        tmp_path / "classes" / "a" / "own",
        tmp_path / "classes" / "a" / "b",
        tmp_path / "classes" / "a" / "Z.class",
    )
    assert graph.owner_of(tmp_path / "classes" / "a" / "Z.class") is loose
    assert graph.owner_of(tmp_path / "classes" / "a" / "b" / "Y.class") is None
