from __future__ import annotations

import random

import pytest

from goalgraph.config.schema import Operation, TaskSpec
from goalgraph.dag.build import build_adjacency
from goalgraph.dag.levels import topological_levels
from goalgraph.util.errors import CycleDetected, PlanError, UnknownDependency


def _task(task_id: str, *deps: str) -> TaskSpec:
    return TaskSpec(id=task_id, name=task_id, operation=Operation.SYNTHESIZE, depends_on=deps)


def _random_dag(seed: int, size: int) -> list[TaskSpec]:
    rng = random.Random(seed)
    ids = [f"t{i}" for i in range(size)]
    tasks = []
    for idx, task_id in enumerate(ids):
        earlier = ids[:idx]
        deps = rng.sample(earlier, k=rng.randint(0, min(3, len(earlier))))
        tasks.append(_task(task_id, *deps))
    rng.shuffle(tasks)
    return tasks


def test_build_adjacency_includes_leaf_nodes_and_correct_in_degree() -> None:
    tasks = [
        _task("root"),
        _task("child_a", "root"),
        _task("child_b", "root"),
        _task("leaf", "child_a", "child_b"),
    ]

    dependents, in_degree = build_adjacency(tasks)
    assert dependents["root"] == ["child_a", "child_b"]
    assert dependents["leaf"] == []
    assert in_degree == {"root": 0, "child_a": 1, "child_b": 1, "leaf": 2}


def test_build_adjacency_rejects_unknown_dependency_eagerly() -> None:
    with pytest.raises(UnknownDependency) as exc_info:
        build_adjacency([_task("a"), _task("b", "ghost")])
    assert exc_info.value.task_id == "b"
    assert exc_info.value.dependency == "ghost"


def test_topological_levels_fan_out_fan_in() -> None:
    tasks = [
        _task("synth"),
        _task("validate", "synth"),
        _task("tests", "synth"),
        _task("final", "synth", "validate", "tests"),
    ]
    assert topological_levels(tasks) == [["synth"], ["validate", "tests"], ["final"]]


def test_topological_levels_detects_two_node_cycle() -> None:
    with pytest.raises(CycleDetected) as exc_info:
        topological_levels([_task("a", "b"), _task("b", "a")])
    assert exc_info.value.remaining == ["a", "b"]


def test_topological_levels_detects_cycle_behind_valid_prefix() -> None:
    tasks = [_task("root"), _task("a", "root", "c"), _task("b", "a"), _task("c", "b")]
    with pytest.raises(CycleDetected):
        topological_levels(tasks)


def test_topological_levels_detects_self_dependency() -> None:
    with pytest.raises(PlanError):
        topological_levels([_task("a", "a")])


def test_topological_levels_reports_unknown_dependency_before_cycle() -> None:
    tasks = [_task("a", "b"), _task("b", "a"), _task("c", "missing")]
    with pytest.raises(UnknownDependency):
        topological_levels(tasks)


def test_topological_levels_empty_input() -> None:
    assert topological_levels([]) == []


@pytest.mark.parametrize("seed", range(10))
def test_topological_levels_partition_respects_dependencies(seed: int) -> None:
    tasks = _random_dag(seed, size=25)
    levels = topological_levels(tasks)

    flat = [task_id for level in levels for task_id in level]
    assert sorted(flat) == sorted(task.id for task in tasks)
    assert len(flat) == len(set(flat))

    level_of = {task_id: idx for idx, level in enumerate(levels) for task_id in level}
    for task in tasks:
        for dep in task.depends_on:
            assert level_of[dep] < level_of[task.id]
    for idx, level in enumerate(levels):
        for task_id in level:
            deps = next(t.depends_on for t in tasks if t.id == task_id)
            assert idx == 0 or any(level_of[dep] == idx - 1 for dep in deps)


def test_topological_levels_is_deterministic() -> None:
    tasks = _random_dag(7, size=30)
    first = topological_levels(tasks)
    second = topological_levels(tasks)
    assert [set(level) for level in first] == [set(level) for level in second]
