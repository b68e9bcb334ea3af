from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, cast

from goalgraph.config.schema import Goal, Plan, TaskSpec

ExecutionStatus = Literal["queued", "running", "completed", "canceled"]
TaskStatus = Literal["pending", "running", "completed", "failed"]
EXECUTION_STATUS_VALUES: set[str] = {"queued", "running", "completed", "canceled"}
TASK_STATUS_VALUES: set[str] = {"pending", "running", "completed", "failed"}


def _as_str(value: object, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _as_optional_str(value: object) -> str | None:
    return value if isinstance(value, str) else None


def _as_int(value: object, default: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return value


def _as_optional_float(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _parse_task_status(value: object) -> TaskStatus:
    status = _as_str(value, "pending")
    if status not in TASK_STATUS_VALUES:
        status = "pending"
    return cast(TaskStatus, status)


def _parse_execution_status(value: object) -> ExecutionStatus:
    status = _as_str(value, "queued")
    if status not in EXECUTION_STATUS_VALUES:
        status = "queued"
    return cast(ExecutionStatus, status)


@dataclass(slots=True)
class TaskRun:
    spec: TaskSpec
    status: TaskStatus = "pending"
    retries: int = 0
    result: Any = None
    error: str | None = None
    tokens: int = 0
    started_at: str | None = None
    ended_at: str | None = None
    duration_sec: float | None = None

    @property
    def id(self) -> str:
        return self.spec.id

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.spec.id,
            "name": self.spec.name,
            "tool": self.spec.operation.value,
            "depends_on": list(self.spec.depends_on),
            "priority": self.spec.priority,
            "estimated_time": self.spec.estimated_time,
            "cost_estimate": self.spec.cost_estimate,
            "status": self.status,
            "retries": self.retries,
            "result": self.result,
            "error": self.error,
            "tokens": self.tokens,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "duration_sec": self.duration_sec,
        }

    @classmethod
    def from_dict(cls, spec: TaskSpec, data: dict[str, object]) -> TaskRun:
        return cls(
            spec=spec,
            status=_parse_task_status(data.get("status")),
            retries=_as_int(data.get("retries")),
            result=data.get("result"),
            error=_as_optional_str(data.get("error")),
            tokens=_as_int(data.get("tokens")),
            started_at=_as_optional_str(data.get("started_at")),
            ended_at=_as_optional_str(data.get("ended_at")),
            duration_sec=_as_optional_float(data.get("duration_sec")),
        )


@dataclass(slots=True)
class Execution:
    id: str
    goal: Goal
    plan: Plan
    tasks: dict[str, TaskRun]
    status: ExecutionStatus = "queued"
    total_tokens: int = 0
    started_at: str | None = None
    ended_at: str | None = None
    duration_sec: float | None = None

    def count(self, status: TaskStatus) -> int:
        return sum(1 for run in self.tasks.values() if run.status == status)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "goal": self.goal.to_dict(),
            "plan": self.plan.to_dict(),
            "tasks": [run.to_dict() for run in self.tasks.values()],
            "total_tokens": self.total_tokens,
            "status": self.status,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "duration_sec": self.duration_sec,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Execution:
        plan = Plan.from_dict(data.get("plan") or {})
        raw_runs = {
            raw["id"]: raw
            for raw in data.get("tasks") or []
            if isinstance(raw, dict) and isinstance(raw.get("id"), str)
        }
        tasks = {
            spec.id: TaskRun.from_dict(spec, raw_runs.get(spec.id, {})) for spec in plan.tasks
        }
        return cls(
            id=_as_str(data.get("id")),
            goal=Goal.from_dict(data.get("goal")),
            plan=plan,
            tasks=tasks,
            status=_parse_execution_status(data.get("status")),
            total_tokens=_as_int(data.get("total_tokens")),
            started_at=_as_optional_str(data.get("started_at")),
            ended_at=_as_optional_str(data.get("ended_at")),
            duration_sec=_as_optional_float(data.get("duration_sec")),
        )
