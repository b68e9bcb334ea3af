from __future__ import annotations

from typing import Any

import openai

from goalgraph.llm.client import Completion, Usage
from goalgraph.util.errors import ConfigError, OperationError

DEFAULT_SYSTEM = "You are precise and terse."


class OpenAICompletionClient:
    """Completion client backed by the OpenAI Responses API."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str = "gpt-5",
        max_retries: int = 3,
        timeout_sec: float = 120.0,
        client: Any | None = None,
    ) -> None:
        if client is None and not api_key:
            raise ConfigError("OPENAI_API_KEY environment variable is required")
        self.model = model
        self._client = client or openai.AsyncOpenAI(
            api_key=api_key, max_retries=max_retries, timeout=timeout_sec
        )

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        max_tokens: int = 2000,
        json_schema: dict[str, Any] | None = None,
    ) -> Completion:
        request: dict[str, Any] = {
            "model": self.model,
            "instructions": system or DEFAULT_SYSTEM,
            "input": prompt,
            "max_output_tokens": max_tokens,
        }
        if json_schema is not None:
            request["text"] = {
                "format": {
                    "type": "json_schema",
                    "name": json_schema["name"],
                    "schema": json_schema["schema"],
                    "strict": True,
                }
            }
        try:
            response = await self._client.responses.create(**request)
        except openai.APIStatusError as exc:
            raise OperationError(str(exc), status=exc.status_code) from exc
        except (openai.APIConnectionError, openai.APITimeoutError) as exc:
            raise OperationError(str(exc), retryable=True) from exc
        except openai.OpenAIError as exc:
            raise OperationError(str(exc)) from exc

        usage = getattr(response, "usage", None)
        return Completion(
            text=str(getattr(response, "output_text", "") or ""),
            usage=Usage(
                input_tokens=int(getattr(usage, "input_tokens", 0) or 0),
                output_tokens=int(getattr(usage, "output_tokens", 0) or 0),
            ),
        )
