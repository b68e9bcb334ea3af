from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from goalgraph.config.schema import (
    ArtifactRef,
    Goal,
    Operation,
    Plan,
    Strategy,
    TaskSpec,
    decode_bindings,
    encode_bindings,
)
from goalgraph.state.model import Execution, TaskRun
from goalgraph.state.store import EXECUTION_FILE, load_execution, save_execution_atomic
from goalgraph.util.errors import StateError


def _execution() -> Execution:
    goal = Goal(id="g", title="Cache", success_criteria=["lru"])
    synth = TaskSpec(
        id="t1",
        name="SynthesizeCode",
        operation=Operation.SYNTHESIZE,
        inputs={"goal": goal, "context": {}},
        cost_estimate=5000,
    )
    final = TaskSpec(
        id="t2",
        name="Finalize",
        operation=Operation.WRITE_ARTIFACT,
        inputs={"name": "g.md", "sources": {"SynthesizeCode": ArtifactRef("t1")}},
        depends_on=("t1",),
        priority=3,
    )
    plan = Plan(Strategy.SIMPLE, 1, (synth, final))
    execution = Execution(
        id="20260101_000000_abcdef",
        goal=goal,
        plan=plan,
        tasks={spec.id: TaskRun(spec) for spec in plan.tasks},
        status="completed",
        total_tokens=42,
    )
    execution.tasks["t1"].status = "completed"
    execution.tasks["t1"].result = "code"
    execution.tasks["t1"].tokens = 42
    execution.tasks["t2"].status = "failed"
    execution.tasks["t2"].retries = 3
    execution.tasks["t2"].error = "disk full"
    return execution


def test_bindings_encode_refs_and_goals() -> None:
    encoded = encode_bindings({"code": ArtifactRef("t1"), "goal": Goal(title="x"), "n": (1, 2)})
    assert encoded["code"] == {"$ref": "t1"}
    assert encoded["goal"]["title"] == "x"
    assert encoded["n"] == [1, 2]
    assert decode_bindings(encoded)["code"] == ArtifactRef("t1")
    assert decode_bindings({"$ref": "a", "extra": 1}) == {"$ref": "a", "extra": 1}


def test_execution_dict_roundtrip_preserves_runs_and_plan() -> None:
    original = _execution()
    restored = Execution.from_dict(json.loads(json.dumps(original.to_dict(), default=str)))

    assert restored.id == original.id
    assert restored.status == "completed"
    assert restored.total_tokens == 42
    assert restored.plan.strategy is Strategy.SIMPLE
    assert restored.plan.task("t2").inputs["sources"]["SynthesizeCode"] == ArtifactRef("t1")
    assert restored.tasks["t2"].retries == 3
    assert restored.tasks["t2"].error == "disk full"
    assert restored.tasks["t1"].result == "code"


def test_execution_dict_lists_task_fields() -> None:
    payload = _execution().to_dict()
    first = payload["tasks"][0]
    assert first["tool"] == "llm.synthesize"
    assert first["status"] == "completed"
    assert first["cost_estimate"] == 5000


def test_execution_from_dict_is_lenient_about_run_fields() -> None:
    payload = _execution().to_dict()
    payload["status"] = "exploded"
    payload["total_tokens"] = "many"
    payload["tasks"] = [{"id": "t1", "status": "weird", "retries": True}, "junk"]

    restored = Execution.from_dict(payload)
    assert restored.status == "queued"
    assert restored.total_tokens == 0
    assert restored.tasks["t1"].status == "pending"
    assert restored.tasks["t1"].retries == 0
    assert restored.tasks["t2"].status == "pending"


def test_plan_task_lookup_raises_for_unknown_id() -> None:
    with pytest.raises(KeyError):
        _execution().plan.task("nope")


def test_save_and_load_execution(tmp_path: Path) -> None:
    save_execution_atomic(tmp_path, _execution())
    assert not (tmp_path / f"{EXECUTION_FILE}.tmp").exists()

    loaded = load_execution(tmp_path)
    assert loaded.tasks["t2"].status == "failed"
    assert loaded.goal.title == "Cache"


def test_load_execution_missing(tmp_path: Path) -> None:
    with pytest.raises(StateError, match="not found"):
        load_execution(tmp_path)


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("{not json", "invalid execution json"),
        ("[]", "root"),
        ('{"id": "", "plan": {}}', "id"),
        ('{"id": "x", "plan": []}', "plan"),
        ('{"id": "x", "plan": {"tasks": [{"id": "a", "tool": "nope"}]}}', "invalid execution plan"),
    ],
)
def test_load_execution_rejects_invalid_payloads(
    tmp_path: Path, content: str, message: str
) -> None:
    (tmp_path / EXECUTION_FILE).write_text(content, encoding="utf-8")
    with pytest.raises(StateError, match=message):
        load_execution(tmp_path)


def test_load_execution_rejects_symlink(tmp_path: Path) -> None:
    real = tmp_path / "real.json"
    real.write_text(json.dumps(_execution().to_dict()), encoding="utf-8")
    os.symlink(real, tmp_path / EXECUTION_FILE)
    with pytest.raises(StateError, match="symlink"):
        load_execution(tmp_path)
