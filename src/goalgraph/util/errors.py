"""Application-level error types."""

from __future__ import annotations

_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class GoalGraphError(Exception):
    """Base error for goalgraph."""


class PlanError(GoalGraphError):
    """Raised when a task graph cannot be scheduled."""


class CycleDetected(PlanError):
    """Raised when tasks remain but none has all dependencies satisfied."""

    def __init__(self, remaining: list[str]) -> None:
        super().__init__(f"Cycle detected in task graph: {sorted(remaining)}")
        self.remaining = sorted(remaining)


class UnknownDependency(PlanError):
    """Raised when a task depends on an id absent from the task set."""

    def __init__(self, task_id: str, dependency: str) -> None:
        super().__init__(f"task '{task_id}' has unknown dependency: {dependency}")
        self.task_id = task_id
        self.dependency = dependency


class GoalError(GoalGraphError):
    """Raised when a goal document fails loading/validation."""


class ConfigError(GoalGraphError):
    """Raised when settings cannot be loaded."""


class StateError(GoalGraphError):
    """Raised when a persisted execution is unreadable."""


class TaskError(GoalGraphError):
    """Per-dispatch failure; contained at the executor's task boundary."""

    retryable: bool | None = None


class OperationError(TaskError):
    """Raised by a tool operation or its external collaborator."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        status: int | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.status = status
        if retryable is None and status is not None:
            retryable = status in _RETRYABLE_STATUS
        self.retryable = retryable


class CircuitOpen(TaskError):
    """Raised when the circuit breaker rejects a dispatch."""

    def __init__(self, retry_in_sec: float) -> None:
        super().__init__(f"Circuit breaker OPEN (retry in {retry_in_sec:.1f}s)")
        self.retry_in_sec = retry_in_sec


class MissingArtifact(TaskError):
    """Raised when an input binding references a result that was never produced."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"missing artifact for task '{task_id}'")
        self.task_id = task_id


class RetriesExhausted(TaskError):
    """Terminal per-task failure after the last allowed attempt."""

    retryable = False

    def __init__(self, task_id: str, attempts: int, cause: BaseException) -> None:
        super().__init__(f"task '{task_id}' failed after {attempts} attempt(s): {cause}")
        self.task_id = task_id
        self.attempts = attempts
        self.cause = cause
