"""Dispatch of task specs to the closed set of tool operations."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from goalgraph.config.schema import Goal, Operation
from goalgraph.llm.client import CompletionClient
from goalgraph.tools.files import ArtifactWriter
from goalgraph.util.errors import OperationError


@dataclass(slots=True)
class OperationResult:
    value: Any
    tokens: int = 0


Handler = Callable[[dict[str, Any]], Awaitable[OperationResult]]

VALIDATION_SCHEMA: dict[str, Any] = {
    "name": "ValidationResult",
    "schema": {
        "type": "object",
        "properties": {
            "overall_pass": {"type": "boolean"},
            "checks": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "criterion": {"type": "string"},
                        "passed": {"type": "boolean"},
                        "details": {"type": "string"},
                    },
                    "required": ["criterion", "passed", "details"],
                    "additionalProperties": False,
                },
            },
            "suggestions": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["overall_pass", "checks", "suggestions"],
        "additionalProperties": False,
    },
}
BUNDLE_SCHEMA: dict[str, Any] = {
    "name": "Bundle",
    "schema": {
        "type": "object",
        "properties": {
            "code": {"type": "string"},
            "tests": {"type": "string"},
            "readme": {"type": "string"},
        },
        "required": ["code", "tests", "readme"],
        "additionalProperties": False,
    },
}


class ToolInvoker:
    """Maps every Operation to exactly one handler.

    Construction fails when any operation lacks a handler, so an unhandled
    operation can never reach dispatch.
    """

    def __init__(self, handlers: Mapping[Operation, Handler]) -> None:
        missing = [op.value for op in Operation if op not in handlers]
        if missing:
            raise ValueError(f"no handler registered for operations: {missing}")
        self._handlers = dict(handlers)

    @classmethod
    def for_collaborators(cls, client: CompletionClient, writer: ArtifactWriter) -> ToolInvoker:
        tools = _Tools(client, writer)
        return cls(
            {
                Operation.SYNTHESIZE: tools.synthesize,
                Operation.VALIDATE: tools.validate,
                Operation.GENERATE_TESTS: tools.generate_tests,
                Operation.GENERATE_DOCS: tools.generate_docs,
                Operation.SYNTHESIZE_COMPLETE: tools.synthesize_complete,
                Operation.WRITE_ARTIFACT: tools.write_artifact,
            }
        )

    async def invoke(self, operation: Operation, inputs: dict[str, Any]) -> OperationResult:
        return await self._handlers[operation](inputs)


def _goal(value: object) -> Goal:
    return value if isinstance(value, Goal) else Goal.from_dict(value)


def _code_text(value: object) -> str:
    if isinstance(value, dict) and isinstance(value.get("code"), str):
        return value["code"]
    return "" if value is None else str(value)


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


class _Tools:
    def __init__(self, client: CompletionClient, writer: ArtifactWriter) -> None:
        self.client = client
        self.writer = writer

    async def synthesize(self, inputs: dict[str, Any]) -> OperationResult:
        goal = _goal(inputs.get("goal"))
        prompt = (
            "Generate production-ready Python code.\n"
            f"Title: {goal.title}\n"
            f"Description: {goal.description}\n"
            f"Constraints: {json.dumps(goal.constraints, default=str)}\n"
            f"Success: {'; '.join(goal.success_criteria)}\n"
            f"Context: {json.dumps(inputs.get('context') or {}, default=str)}\n"
            "Rules: one complete module; error handling; type hints; docstrings; "
            "modular; testable; include example usage.\n"
            "Return ONLY Python code."
        )
        completion = await self.client.complete(
            prompt, system="Expert Python developer. Output only code.", max_tokens=4000
        )
        return OperationResult(completion.text, completion.usage.total_tokens)

    async def validate(self, inputs: dict[str, Any]) -> OperationResult:
        criteria = [str(c) for c in inputs.get("criteria") or []]
        numbered = "\n".join(f"{idx}. {c}" for idx, c in enumerate(criteria, start=1))
        prompt = (
            "Validate this Python code against criteria.\n"
            f"Code:\n```python\n{_code_text(inputs.get('code'))}\n```\n"
            f"Criteria:\n{numbered}"
        )
        completion = await self.client.complete(
            prompt, system="Software reviewer.", json_schema=VALIDATION_SCHEMA
        )
        parsed = _parse_json(completion.text)
        if not isinstance(parsed, dict):
            parsed = {"overall_pass": False, "checks": [], "suggestions": ["Non-JSON response"]}
        return OperationResult(parsed, completion.usage.total_tokens)

    async def generate_tests(self, inputs: dict[str, Any]) -> OperationResult:
        goal = _goal(inputs.get("goal"))
        prompt = (
            "Write pytest tests for code.\n\n"
            f"```python\n{_code_text(inputs.get('code'))}\n```\n"
            f"Goal: {goal.title}\n"
            f"Success: {'; '.join(goal.success_criteria)}\n"
            "Rules: high coverage; fixtures as needed; edge cases. Output ONLY test code."
        )
        completion = await self.client.complete(
            prompt, system="Expert test engineer. Output only code.", max_tokens=3000
        )
        return OperationResult(completion.text, completion.usage.total_tokens)

    async def generate_docs(self, inputs: dict[str, Any]) -> OperationResult:
        goal = _goal(inputs.get("goal"))
        prompt = (
            "Write README.md and brief API docs for a Python module. "
            f"Goal: {goal.title}. {goal.description}\n"
            "Return Markdown only."
        )
        completion = await self.client.complete(prompt, max_tokens=1500)
        return OperationResult(completion.text, completion.usage.total_tokens)

    async def synthesize_complete(self, inputs: dict[str, Any]) -> OperationResult:
        goal = _goal(inputs.get("goal"))
        prompt = (
            "Produce JSON: { code: string, tests: string, readme: string } for a Python "
            f"project meeting goal: {goal.title}. "
            f"Constraints: {json.dumps(goal.constraints, default=str)}."
        )
        completion = await self.client.complete(
            prompt, system="Return JSON only.", max_tokens=6000, json_schema=BUNDLE_SCHEMA
        )
        parsed = _parse_json(completion.text)
        if not isinstance(parsed, dict):
            parsed = {"code": completion.text, "tests": "", "readme": ""}
        return OperationResult(parsed, completion.usage.total_tokens)

    async def write_artifact(self, inputs: dict[str, Any]) -> OperationResult:
        name = inputs.get("name")
        if not isinstance(name, str):
            raise OperationError("file.write requires a string name", retryable=False)
        sources = inputs.get("sources") or {}
        if not isinstance(sources, dict):
            raise OperationError("file.write sources must be a mapping", retryable=False)
        result = await self.writer.write(name, render_bundle(sources))
        return OperationResult(result.to_dict(), 0)


def render_bundle(sources: Mapping[str, Any]) -> str:
    sections: list[str] = []
    for label, value in sources.items():
        sections.append(f"## {label}")
        sections.append("")
        if isinstance(value, str):
            sections.append(value.rstrip())
        else:
            sections.append("```json")
            sections.append(json.dumps(value, ensure_ascii=False, indent=2, default=str))
            sections.append("```")
        sections.append("")
    return "\n".join(sections)
