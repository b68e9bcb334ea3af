from __future__ import annotations

from typing import Any

from goalgraph.config.schema import ArtifactRef
from goalgraph.util.errors import MissingArtifact


class ArtifactStore:
    """Results of completed tasks for a single execution, written once per task id."""

    def __init__(self) -> None:
        self._items: dict[str, Any] = {}

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def put(self, task_id: str, value: Any) -> None:
        if task_id in self._items:
            raise ValueError(f"artifact already stored for task '{task_id}'")
        self._items[task_id] = value

    def get(self, task_id: str) -> Any:
        try:
            return self._items[task_id]
        except KeyError:
            raise MissingArtifact(task_id) from None

    def snapshot(self) -> dict[str, Any]:
        return dict(self._items)

    def resolve(self, bindings: Any) -> Any:
        """Replace every ArtifactRef in a binding structure with the stored result."""
        if isinstance(bindings, ArtifactRef):
            return self.get(bindings.task_id)
        if isinstance(bindings, dict):
            return {key: self.resolve(value) for key, value in bindings.items()}
        if isinstance(bindings, list):
            return [self.resolve(value) for value in bindings]
        if isinstance(bindings, tuple):
            return tuple(self.resolve(value) for value in bindings)
        return bindings
