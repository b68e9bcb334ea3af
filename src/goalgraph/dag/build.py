"""Build graph structures from task specs."""

from __future__ import annotations

from collections.abc import Iterable

from goalgraph.config.schema import TaskSpec
from goalgraph.util.errors import UnknownDependency


def build_adjacency(
    tasks: Iterable[TaskSpec],
) -> tuple[dict[str, list[str]], dict[str, int]]:
    """Return dependents adjacency and in-degree by task id.

    Every dependency must name a task in the same set; the first one that does
    not raises UnknownDependency before any adjacency is returned.
    """
    specs = list(tasks)
    known = {task.id for task in specs}
    dependents: dict[str, list[str]] = {task.id: [] for task in specs}
    in_degree: dict[str, int] = {}

    for task in specs:
        in_degree[task.id] = len(task.depends_on)
        for dep in task.depends_on:
            if dep not in known:
                raise UnknownDependency(task.id, dep)
            dependents[dep].append(task.id)

    return dependents, in_degree
