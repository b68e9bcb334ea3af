from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Strategy(str, Enum):
    SIMPLE = "simple"
    PARALLEL_OPTIMIZE = "parallel_optimize"
    RESOURCE_AWARE = "resource_aware"
    COST_OPTIMIZE = "cost_optimize"

    @classmethod
    def parse(cls, name: str | None) -> Strategy:
        """Resolve a strategy name; unknown names fall back to parallel_optimize."""
        if name is None:
            return DEFAULT_STRATEGY
        key = name.strip().lower().replace("-", "_")
        key = _STRATEGY_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            return DEFAULT_STRATEGY


DEFAULT_STRATEGY = Strategy.PARALLEL_OPTIMIZE
_STRATEGY_ALIASES = {
    "parallel": "parallel_optimize",
    "parallel_optimized": "parallel_optimize",
    "cost_optimized": "cost_optimize",
    "resource": "resource_aware",
}


class Operation(str, Enum):
    SYNTHESIZE = "llm.synthesize"
    VALIDATE = "llm.validate"
    GENERATE_TESTS = "llm.generate_tests"
    GENERATE_DOCS = "llm.generate_docs"
    SYNTHESIZE_COMPLETE = "llm.synthesize_complete"
    WRITE_ARTIFACT = "file.write"


@dataclass(slots=True)
class Goal:
    id: str = ""
    title: str = ""
    description: str = ""
    constraints: dict[str, Any] = field(default_factory=dict)
    success_criteria: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "constraints": self.constraints,
            "success_criteria": self.success_criteria,
        }

    @classmethod
    def from_dict(cls, data: object) -> Goal:
        if not isinstance(data, dict):
            return cls()
        constraints = data.get("constraints")
        criteria = data.get("success_criteria")
        return cls(
            id=str(data.get("id") or ""),
            title=data.get("title") if isinstance(data.get("title"), str) else "",
            description=(
                data.get("description") if isinstance(data.get("description"), str) else ""
            ),
            constraints=constraints if isinstance(constraints, dict) else {},
            success_criteria=(
                [c for c in criteria if isinstance(c, str)] if isinstance(criteria, list) else []
            ),
        )


@dataclass(frozen=True, slots=True)
class ArtifactRef:
    """Input binding that reads another task's result from the artifact store."""

    task_id: str


@dataclass(frozen=True, slots=True)
class TaskSpec:
    id: str
    name: str
    operation: Operation
    inputs: dict[str, Any] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()
    priority: int = 1
    estimated_time: float = 0.0
    cost_estimate: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "tool": self.operation.value,
            "inputs": encode_bindings(self.inputs),
            "depends_on": list(self.depends_on),
            "priority": self.priority,
            "estimated_time": self.estimated_time,
            "cost_estimate": self.cost_estimate,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskSpec:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            operation=Operation(data["tool"]),
            inputs=decode_bindings(data.get("inputs") or {}),
            depends_on=tuple(str(dep) for dep in data.get("depends_on") or []),
            priority=int(data.get("priority", 1)),
            estimated_time=float(data.get("estimated_time", 0.0)),
            cost_estimate=int(data.get("cost_estimate", 0)),
        )


@dataclass(frozen=True, slots=True)
class Plan:
    strategy: Strategy
    parallelism: int
    tasks: tuple[TaskSpec, ...]

    def task(self, task_id: str) -> TaskSpec:
        for spec in self.tasks:
            if spec.id == task_id:
                return spec
        raise KeyError(task_id)

    def to_dict(self) -> dict[str, object]:
        return {
            "strategy": self.strategy.value,
            "parallelism": self.parallelism,
            "tasks": [task.to_dict() for task in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Plan:
        return cls(
            strategy=Strategy.parse(data.get("strategy")),
            parallelism=int(data.get("parallelism", 1)),
            tasks=tuple(TaskSpec.from_dict(raw) for raw in data.get("tasks") or []),
        )


def encode_bindings(value: Any) -> Any:
    if isinstance(value, ArtifactRef):
        return {"$ref": value.task_id}
    if isinstance(value, Goal):
        return value.to_dict()
    if isinstance(value, dict):
        return {key: encode_bindings(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_bindings(item) for item in value]
    return value


def decode_bindings(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {"$ref"} and isinstance(value["$ref"], str):
            return ArtifactRef(value["$ref"])
        return {key: decode_bindings(item) for key, item in value.items()}
    if isinstance(value, list):
        return [decode_bindings(item) for item in value]
    return value
