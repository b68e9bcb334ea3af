"""Topological leveling of a task set."""

from __future__ import annotations

from collections.abc import Iterable

from goalgraph.config.schema import TaskSpec
from goalgraph.dag.build import build_adjacency
from goalgraph.util.errors import CycleDetected


def topological_levels(tasks: Iterable[TaskSpec]) -> list[list[str]]:
    """Partition tasks into levels whose dependencies sit in earlier levels.

    Level order inside a level follows the input order, so the same task set
    always yields the same partition.
    """
    specs = list(tasks)
    dependents, in_degree = build_adjacency(specs)
    degrees = dict(in_degree)
    remaining = [task.id for task in specs]
    levels: list[list[str]] = []

    while remaining:
        ready = [task_id for task_id in remaining if degrees[task_id] == 0]
        if not ready:
            raise CycleDetected(remaining)
        levels.append(ready)
        scheduled = set(ready)
        remaining = [task_id for task_id in remaining if task_id not in scheduled]
        for task_id in ready:
            for child in dependents[task_id]:
                degrees[child] -= 1

    return levels
