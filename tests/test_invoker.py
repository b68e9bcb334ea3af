from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from goalgraph.config.schema import Goal, Operation
from goalgraph.exec.invoker import (
    BUNDLE_SCHEMA,
    OperationResult,
    ToolInvoker,
    render_bundle,
)
from goalgraph.llm.client import Completion, EchoCompletionClient, Usage
from goalgraph.tools.files import FileArtifactWriter, WriteResult
from goalgraph.util.errors import OperationError


class CannedClient:
    def __init__(self, text: str) -> None:
        self.text = text
        self.requests: list[dict[str, Any]] = []

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        max_tokens: int = 2000,
        json_schema: dict[str, Any] | None = None,
    ) -> Completion:
        self.requests.append(
            {"prompt": prompt, "system": system, "max_tokens": max_tokens, "schema": json_schema}
        )
        return Completion(self.text, Usage(input_tokens=3, output_tokens=4))


class MemoryWriter:
    def __init__(self) -> None:
        self.files: dict[str, str] = {}

    async def write(self, name: str, content: str) -> WriteResult:
        self.files[name] = content
        return WriteResult(path=f"mem/{name}", size=len(content))


def _goal() -> Goal:
    return Goal(id="g", title="Parser", description="ini parser", success_criteria=["fast"])


def test_invoker_requires_handler_for_every_operation() -> None:
    async def handle(inputs: dict[str, Any]) -> OperationResult:
        return OperationResult(None)

    handlers = {op: handle for op in Operation if op is not Operation.GENERATE_DOCS}
    with pytest.raises(ValueError, match="llm.generate_docs"):
        ToolInvoker(handlers)


@pytest.mark.asyncio
async def test_synthesize_reports_text_and_token_usage() -> None:
    client = CannedClient("def parse(): ...")
    invoker = ToolInvoker.for_collaborators(client, MemoryWriter())

    result = await invoker.invoke(Operation.SYNTHESIZE, {"goal": _goal(), "context": {}})

    assert result.value == "def parse(): ..."
    assert result.tokens == 7
    assert "Title: Parser" in client.requests[0]["prompt"]
    assert client.requests[0]["schema"] is None


@pytest.mark.asyncio
async def test_synthesize_accepts_goal_mapping() -> None:
    client = CannedClient("code")
    invoker = ToolInvoker.for_collaborators(client, MemoryWriter())
    await invoker.invoke(Operation.SYNTHESIZE, {"goal": {"title": "From dict"}})
    assert "Title: From dict" in client.requests[0]["prompt"]


@pytest.mark.asyncio
async def test_validate_parses_structured_output() -> None:
    payload = {"overall_pass": True, "checks": [], "suggestions": ["none"]}
    client = CannedClient(json.dumps(payload))
    invoker = ToolInvoker.for_collaborators(client, MemoryWriter())

    result = await invoker.invoke(
        Operation.VALIDATE, {"criteria": ["fast", "safe"], "code": "x = 1"}
    )

    assert result.value == payload
    prompt = client.requests[0]["prompt"]
    assert "1. fast" in prompt and "2. safe" in prompt
    assert client.requests[0]["schema"]["name"] == "ValidationResult"


@pytest.mark.asyncio
async def test_validate_falls_back_on_non_json_reply() -> None:
    invoker = ToolInvoker.for_collaborators(CannedClient("looks fine"), MemoryWriter())
    result = await invoker.invoke(Operation.VALIDATE, {"criteria": [], "code": "x"})
    assert result.value == {
        "overall_pass": False,
        "checks": [],
        "suggestions": ["Non-JSON response"],
    }


@pytest.mark.asyncio
async def test_synthesize_complete_falls_back_to_code_only_bundle() -> None:
    client = CannedClient("print('hi')")
    invoker = ToolInvoker.for_collaborators(client, MemoryWriter())
    result = await invoker.invoke(Operation.SYNTHESIZE_COMPLETE, {"goal": _goal()})
    assert result.value == {"code": "print('hi')", "tests": "", "readme": ""}
    assert client.requests[0]["schema"] is BUNDLE_SCHEMA


@pytest.mark.asyncio
async def test_write_artifact_renders_sources_and_uses_no_tokens() -> None:
    writer = MemoryWriter()
    invoker = ToolInvoker.for_collaborators(CannedClient(""), writer)

    result = await invoker.invoke(
        Operation.WRITE_ARTIFACT,
        {"name": "g.md", "sources": {"SynthesizeCode": "code", "ValidateCode": {"ok": True}}},
    )

    assert result.tokens == 0
    assert result.value == {"path": "mem/g.md", "size": len(writer.files["g.md"])}
    assert "## SynthesizeCode" in writer.files["g.md"]
    assert '"ok": true' in writer.files["g.md"]


@pytest.mark.asyncio
async def test_write_artifact_rejects_bad_inputs_as_non_retryable() -> None:
    invoker = ToolInvoker.for_collaborators(CannedClient(""), MemoryWriter())
    with pytest.raises(OperationError) as exc_info:
        await invoker.invoke(Operation.WRITE_ARTIFACT, {"name": 3})
    assert exc_info.value.retryable is False
    with pytest.raises(OperationError):
        await invoker.invoke(Operation.WRITE_ARTIFACT, {"name": "a.md", "sources": ["x"]})


def test_render_bundle_sections() -> None:
    text = render_bundle({"Code": "x = 1\n", "Meta": [1, 2]})
    assert text.startswith("## Code\n\nx = 1\n")
    assert "```json" in text


@pytest.mark.asyncio
async def test_echo_client_end_to_end_with_file_writer(tmp_path: Path) -> None:
    client = EchoCompletionClient()
    invoker = ToolInvoker.for_collaborators(client, FileArtifactWriter(tmp_path / "out"))

    code = await invoker.invoke(Operation.SYNTHESIZE, {"goal": _goal()})
    verdict = await invoker.invoke(Operation.VALIDATE, {"criteria": ["fast"], "code": code.value})
    bundle = await invoker.invoke(Operation.SYNTHESIZE_COMPLETE, {"goal": _goal()})
    written = await invoker.invoke(
        Operation.WRITE_ARTIFACT, {"name": "g.md", "sources": {"code": code.value}}
    )

    assert code.value.startswith("# echo: ")
    assert code.tokens > 0
    assert verdict.value["overall_pass"] is True
    assert set(bundle.value) == {"code", "tests", "readme"}
    target = tmp_path / "out" / "g.md"
    assert written.value == {"path": target.as_posix(), "size": target.stat().st_size}
    assert len(client.calls) == 3
