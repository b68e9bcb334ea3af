"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, cast

from goalgraph.util.errors import ConfigError

QueuePolicy = Literal["block", "drop_oldest"]
_QUEUE_POLICIES = {"block", "drop_oldest"}


@dataclass(slots=True)
class Settings:
    home: Path = Path(".goalgraph")
    out_dir: Path = Path("out")
    token_budget: int = 50_000
    max_parallel: int | None = None
    event_queue_size: int = 256
    event_queue_policy: QueuePolicy = "block"
    openai_api_key: str | None = None
    openai_model: str = "gpt-5"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        source = os.environ if env is None else env
        max_parallel_raw = source.get("GOALGRAPH_MAX_PARALLEL")
        policy = source.get("GOALGRAPH_EVENT_QUEUE_POLICY", "block")
        if policy not in _QUEUE_POLICIES:
            raise ConfigError(
                f"GOALGRAPH_EVENT_QUEUE_POLICY must be one of {sorted(_QUEUE_POLICIES)}"
            )
        return cls(
            home=Path(source.get("GOALGRAPH_HOME", ".goalgraph")),
            out_dir=Path(source.get("GOALGRAPH_OUT_DIR", "out")),
            token_budget=_positive_int(source, "GOALGRAPH_TOKEN_BUDGET", 50_000),
            max_parallel=(
                None
                if not max_parallel_raw
                else _positive_int(source, "GOALGRAPH_MAX_PARALLEL", 1)
            ),
            event_queue_size=_positive_int(source, "GOALGRAPH_EVENT_QUEUE_SIZE", 256),
            event_queue_policy=cast(QueuePolicy, policy),
            openai_api_key=source.get("OPENAI_API_KEY") or None,
            openai_model=source.get("OPENAI_MODEL") or "gpt-5",
        )


def _positive_int(source: Mapping[str, str], key: str, default: int) -> int:
    raw = source.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got: {raw!r}") from exc
    if value < 1:
        raise ConfigError(f"{key} must be >= 1, got: {value}")
    return value
