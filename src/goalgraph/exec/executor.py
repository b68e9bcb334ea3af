from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from goalgraph.config.schema import Goal, Plan, TaskSpec
from goalgraph.dag.levels import topological_levels
from goalgraph.exec.artifacts import ArtifactStore
from goalgraph.exec.breaker import CircuitBreaker
from goalgraph.exec.events import Event, EventType
from goalgraph.exec.invoker import OperationResult, ToolInvoker
from goalgraph.exec.retry import RetryPolicy
from goalgraph.observability.metrics import MetricsSink
from goalgraph.state.model import Execution, TaskRun
from goalgraph.util.errors import (
    CircuitOpen,
    OperationError,
    RetriesExhausted,
    TaskError,
)
from goalgraph.util.ids import new_execution_id
from goalgraph.util.time import duration_sec, now

logger = logging.getLogger(__name__)

OnEvent = Callable[[Event], Awaitable[None] | None]
ShouldCancel = Callable[[], bool]


@dataclass(slots=True)
class _RunContext:
    execution: Execution
    store: ArtifactStore
    on_event: OnEvent | None

    async def emit(self, event_type: EventType, data: dict[str, Any]) -> None:
        if self.on_event is None:
            return
        outcome = self.on_event(Event(event_type, data))
        if inspect.isawaitable(outcome):
            await outcome


class Executor:
    """Runs a Plan level by level; tasks inside a level are dispatched concurrently.

    The circuit breaker belongs to the executor instance and is shared by every
    task it dispatches. Per-task failures are recorded on the task run and never
    escape ``run``; only graph errors raised while leveling the plan do, and they
    surface before any event is emitted.
    """

    def __init__(
        self,
        invoker: ToolInvoker,
        *,
        breaker: CircuitBreaker | None = None,
        retry: RetryPolicy | None = None,
        metrics: MetricsSink | None = None,
        max_parallel: int | None = None,
    ) -> None:
        if max_parallel is not None and max_parallel < 1:
            raise ValueError("max_parallel must be >= 1")
        self.invoker = invoker
        self.breaker = breaker or CircuitBreaker()
        self.retry = retry or RetryPolicy()
        self.metrics = metrics
        self._sem = asyncio.Semaphore(max_parallel) if max_parallel is not None else None

    async def run(
        self,
        plan: Plan,
        goal: Goal,
        on_event: OnEvent | None = None,
        *,
        should_cancel: ShouldCancel | None = None,
        execution_id: str | None = None,
    ) -> Execution:
        levels = topological_levels(plan.tasks)

        started = now()
        execution = Execution(
            id=execution_id or new_execution_id(started),
            goal=goal,
            plan=plan,
            tasks={spec.id: TaskRun(spec) for spec in plan.tasks},
        )
        ctx = _RunContext(execution=execution, store=ArtifactStore(), on_event=on_event)
        execution.status = "running"
        execution.started_at = started.isoformat(timespec="seconds")
        await ctx.emit(
            "start",
            {
                "execution_id": execution.id,
                "plan": plan.to_dict(),
                "levels": [list(level) for level in levels],
            },
        )

        canceled = False
        for index, level in enumerate(levels):
            if should_cancel is not None and should_cancel():
                canceled = True
                break
            logger.info("level %d: dispatching %d task(s)", index, len(level))
            await ctx.emit("level_start", {"level": index, "tasks": list(level)})
            await asyncio.gather(*(self._dispatch(ctx, task_id) for task_id in level))
            await ctx.emit(
                "level_end",
                {
                    "level": index,
                    "completed": [t for t in level if execution.tasks[t].status == "completed"],
                    "failed": [t for t in level if execution.tasks[t].status == "failed"],
                },
            )

        ended = now()
        execution.ended_at = ended.isoformat(timespec="seconds")
        execution.duration_sec = duration_sec(started, ended)
        summary = {
            "execution_id": execution.id,
            "total_tokens": execution.total_tokens,
            "completed": execution.count("completed"),
            "failed": execution.count("failed"),
            "pending": execution.count("pending"),
            "duration_sec": execution.duration_sec,
        }
        if canceled:
            execution.status = "canceled"
            logger.warning("execution %s canceled before all levels ran", execution.id)
            await ctx.emit("canceled", summary)
        else:
            execution.status = "completed"
            await ctx.emit("done", summary)
        await ctx.emit("end", {"execution_id": execution.id, "status": execution.status})
        return execution

    async def _invoke(self, ctx: _RunContext, spec: TaskSpec) -> OperationResult:
        inputs = ctx.store.resolve(spec.inputs)
        return await self.invoker.invoke(spec.operation, inputs)

    async def _attempt(self, ctx: _RunContext, spec: TaskSpec) -> OperationResult:
        # The breaker is consulted only once a slot is held, so a waiting task
        # sees a breaker opened by the tasks that ran before it.
        if self._sem is None:
            return await self.breaker.call(lambda: self._invoke(ctx, spec))
        async with self._sem:
            return await self.breaker.call(lambda: self._invoke(ctx, spec))

    async def _dispatch(self, ctx: _RunContext, task_id: str) -> None:
        run = ctx.execution.tasks[task_id]
        spec = run.spec
        while True:
            started = now()
            run.status = "running"
            run.started_at = started.isoformat(timespec="seconds")
            run.ended_at = None
            await ctx.emit(
                "task_start",
                {"task_id": task_id, "name": spec.name, "attempt": run.retries + 1},
            )
            try:
                outcome = await self._attempt(ctx, spec)
            except TaskError as exc:
                error: TaskError = exc
            except Exception as exc:
                error = OperationError(
                    f"{type(exc).__name__}: {exc}", operation=spec.operation.value
                )
            else:
                self._complete(ctx, run, outcome, started)
                await ctx.emit(
                    "task_done",
                    {"task_id": task_id, "result": outcome.value, "tokens": outcome.tokens},
                )
                await ctx.emit("task_end", {"task_id": task_id, "status": run.status})
                return

            ended = now()
            run.ended_at = ended.isoformat(timespec="seconds")
            run.duration_sec = duration_sec(started, ended)
            run.retries += 1
            if isinstance(error, CircuitOpen) and self.metrics is not None:
                self.metrics.inc("breaker.rejected")
            if self.retry.should_retry(run.retries, error):
                run.status = "pending"
                logger.debug("task %s attempt %d failed: %s", task_id, run.retries, error)
                if self.metrics is not None:
                    self.metrics.inc("tasks.retried")
                await ctx.emit(
                    "task_retry",
                    {"task_id": task_id, "retries": run.retries, "error": str(error)},
                )
                continue

            failure = RetriesExhausted(task_id, run.retries, error)
            run.status = "failed"
            run.error = str(failure)
            logger.warning("%s", failure)
            if self.metrics is not None:
                self.metrics.inc("tasks.failed")
            await ctx.emit(
                "task_failed",
                {"task_id": task_id, "retries": run.retries, "error": run.error},
            )
            await ctx.emit("task_end", {"task_id": task_id, "status": run.status})
            return

    def _complete(
        self, ctx: _RunContext, run: TaskRun, outcome: OperationResult, started: datetime
    ) -> None:
        ended = now()
        ctx.store.put(run.id, outcome.value)
        run.status = "completed"
        run.result = outcome.value
        run.error = None
        run.tokens = outcome.tokens
        run.ended_at = ended.isoformat(timespec="seconds")
        run.duration_sec = duration_sec(started, ended)
        ctx.execution.total_tokens += outcome.tokens
        if self.metrics is not None:
            self.metrics.inc("tasks.completed")
            self.metrics.record("task.duration_sec", run.duration_sec)
