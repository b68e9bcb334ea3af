"""Turn a goal into a Plan of task specs.

Every strategy is a pure function of ``(goal, context)``: it builds task specs
and never executes anything. Planning never fails; an empty goal still yields
schedulable tasks.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from goalgraph.config.schema import (
    ArtifactRef,
    Goal,
    Operation,
    Plan,
    Strategy,
    TaskSpec,
)
from goalgraph.util.ids import new_task_id

DEFAULT_TOKEN_BUDGET = 50_000


class Planner:
    def __init__(self, id_factory: Callable[[], str] = new_task_id) -> None:
        self._new_id = id_factory

    def plan(
        self,
        goal: Goal,
        context: Mapping[str, Any] | None = None,
        strategy: Strategy | str | None = None,
    ) -> Plan:
        ctx = dict(context or {})
        chosen = strategy if isinstance(strategy, Strategy) else Strategy.parse(strategy)
        if chosen is Strategy.SIMPLE:
            return self._simple(goal, ctx)
        if chosen is Strategy.RESOURCE_AWARE:
            return self._resource_aware(goal, ctx)
        if chosen is Strategy.COST_OPTIMIZE:
            return self._cost_optimize(goal, ctx)
        return self._parallel(goal, ctx)

    def _synthesize(self, goal: Goal, context: dict[str, Any]) -> TaskSpec:
        return TaskSpec(
            id=self._new_id(),
            name="SynthesizeCode",
            operation=Operation.SYNTHESIZE,
            inputs={"goal": goal, "context": context},
            priority=1,
            estimated_time=15,
            cost_estimate=5000,
        )

    def _validate(self, goal: Goal, synth: TaskSpec) -> TaskSpec:
        return TaskSpec(
            id=self._new_id(),
            name="ValidateCode",
            operation=Operation.VALIDATE,
            inputs={"criteria": list(goal.success_criteria), "code": ArtifactRef(synth.id)},
            depends_on=(synth.id,),
            priority=2,
            estimated_time=8,
            cost_estimate=2000,
        )

    def _tests(self, goal: Goal, synth: TaskSpec) -> TaskSpec:
        return TaskSpec(
            id=self._new_id(),
            name="GenerateTests",
            operation=Operation.GENERATE_TESTS,
            inputs={"goal": goal, "code": ArtifactRef(synth.id)},
            depends_on=(synth.id,),
            priority=2,
            estimated_time=10,
            cost_estimate=3000,
        )

    def _docs(self, goal: Goal, synth: TaskSpec) -> TaskSpec:
        return TaskSpec(
            id=self._new_id(),
            name="GenerateDocs",
            operation=Operation.GENERATE_DOCS,
            inputs={"goal": goal, "code": ArtifactRef(synth.id)},
            depends_on=(synth.id,),
            priority=2,
            estimated_time=7,
            cost_estimate=2000,
        )

    def _finalize(self, goal: Goal, upstream: list[TaskSpec], *, priority: int = 3) -> TaskSpec:
        return TaskSpec(
            id=self._new_id(),
            name="Finalize",
            operation=Operation.WRITE_ARTIFACT,
            inputs={
                "name": _artifact_name(goal),
                "sources": {spec.name: ArtifactRef(spec.id) for spec in upstream},
            },
            depends_on=tuple(spec.id for spec in upstream),
            priority=priority,
            estimated_time=2,
            cost_estimate=100,
        )

    def _simple(self, goal: Goal, context: dict[str, Any]) -> Plan:
        synth = self._synthesize(goal, context)
        validate = self._validate(goal, synth)
        tests = self._tests(goal, synth)
        finalize = self._finalize(goal, [synth, validate, tests])
        return Plan(Strategy.SIMPLE, 1, (synth, validate, tests, finalize))

    def _parallel(self, goal: Goal, context: dict[str, Any]) -> Plan:
        synth = self._synthesize(goal, context)
        validate = self._validate(goal, synth)
        tests = self._tests(goal, synth)
        docs = self._docs(goal, synth)
        finalize = self._finalize(goal, [synth, validate, tests, docs])
        return Plan(Strategy.PARALLEL_OPTIMIZE, 3, (synth, validate, tests, docs, finalize))

    def _resource_aware(self, goal: Goal, context: dict[str, Any]) -> Plan:
        budget = _token_budget(context)
        synth = self._synthesize(goal, context)
        candidates = sorted(
            [synth, self._validate(goal, synth), self._tests(goal, synth), self._docs(goal, synth)],
            key=lambda spec: spec.priority,
        )
        admitted: list[TaskSpec] = []
        used = 0
        for spec in candidates:
            if used + spec.cost_estimate > budget:
                continue
            if any(dep not in {a.id for a in admitted} for dep in spec.depends_on):
                continue
            admitted.append(spec)
            used += spec.cost_estimate

        if admitted:
            finalize = self._finalize(goal, admitted)
            if used + finalize.cost_estimate <= budget:
                admitted.append(finalize)
        return Plan(Strategy.RESOURCE_AWARE, 1, tuple(admitted))

    def _cost_optimize(self, goal: Goal, context: dict[str, Any]) -> Plan:
        synth_all = TaskSpec(
            id=self._new_id(),
            name="SynthesizeAll",
            operation=Operation.SYNTHESIZE_COMPLETE,
            inputs={"goal": goal, "context": context, "include_tests": True, "include_docs": True},
            priority=1,
            estimated_time=20,
            cost_estimate=8000,
        )
        finalize = self._finalize(goal, [synth_all], priority=2)
        return Plan(Strategy.COST_OPTIMIZE, 1, (synth_all, finalize))


def _token_budget(context: Mapping[str, Any]) -> float:
    raw = context.get("token_budget", DEFAULT_TOKEN_BUDGET)
    if isinstance(raw, bool):
        return DEFAULT_TOKEN_BUDGET
    try:
        return float(raw)
    except (TypeError, ValueError):
        return DEFAULT_TOKEN_BUDGET


def _artifact_name(goal: Goal) -> str:
    stem = goal.id or "".join(ch if ch.isalnum() else "_" for ch in goal.title.lower()).strip("_")
    return f"{stem or 'goal'}.md"
