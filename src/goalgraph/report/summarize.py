from __future__ import annotations

from goalgraph.state.model import Execution

_RESULT_PREVIEW_CHARS = 200


def _preview(value: object) -> str:
    text = value if isinstance(value, str) else repr(value)
    text = " ".join(text.split())
    if len(text) > _RESULT_PREVIEW_CHARS:
        return text[: _RESULT_PREVIEW_CHARS - 3] + "..."
    return text


def build_summary(execution: Execution) -> dict[str, object]:
    tasks_rows: list[dict[str, object]] = []
    problem_rows: list[dict[str, object]] = []
    artifact_rows: list[dict[str, object]] = []

    for task_id, run in execution.tasks.items():
        tasks_rows.append(
            {
                "id": task_id,
                "name": run.spec.name,
                "tool": run.spec.operation.value,
                "status": run.status,
                "retries": run.retries,
                "tokens": run.tokens,
                "cost_estimate": run.spec.cost_estimate,
                "duration_sec": run.duration_sec,
            }
        )
        if run.status != "completed":
            problem_rows.append(
                {
                    "id": task_id,
                    "name": run.spec.name,
                    "status": run.status,
                    "error": run.error,
                }
            )
        elif isinstance(run.result, dict) and isinstance(run.result.get("path"), str):
            artifact_rows.append({"task_id": task_id, "path": run.result["path"]})
        elif run.result is not None:
            artifact_rows.append({"task_id": task_id, "preview": _preview(run.result)})

    return {
        "execution": {
            "id": execution.id,
            "goal": execution.goal.title,
            "strategy": execution.plan.strategy.value,
            "parallelism": execution.plan.parallelism,
            "status": execution.status,
            "started_at": execution.started_at,
            "ended_at": execution.ended_at,
            "duration_sec": execution.duration_sec,
            "total_tokens": execution.total_tokens,
            "estimated_tokens": sum(run.spec.cost_estimate for run in execution.tasks.values()),
        },
        "tasks": tasks_rows,
        "problems": problem_rows,
        "artifacts": artifact_rows,
    }
