from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(slots=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(slots=True)
class Completion:
    text: str
    usage: Usage = field(default_factory=Usage)


class CompletionClient(Protocol):
    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        max_tokens: int = 2000,
        json_schema: dict[str, Any] | None = None,
    ) -> Completion:
        """Return model text for ``prompt`` or raise OperationError."""
        ...


class EchoCompletionClient:
    """Deterministic offline client; answers without contacting any model."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        max_tokens: int = 2000,
        json_schema: dict[str, Any] | None = None,
    ) -> Completion:
        self.calls.append(prompt)
        first_line = prompt.strip().splitlines()[0] if prompt.strip() else ""
        if json_schema is None:
            text = f"# echo: {first_line}\n"
        elif json_schema.get("name") == "Bundle":
            text = json.dumps({"code": f"# echo: {first_line}\n", "tests": "", "readme": ""})
        else:
            text = json.dumps({"overall_pass": True, "checks": [], "suggestions": []})
        usage = Usage(input_tokens=len(prompt.split()), output_tokens=len(text.split()))
        return Completion(text=text, usage=usage)
