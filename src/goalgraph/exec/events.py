"""Execution lifecycle events and the bounded channel that carries them."""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Literal, cast

from goalgraph.config.settings import QueuePolicy

EventType = Literal[
    "start",
    "level_start",
    "task_start",
    "task_retry",
    "task_done",
    "task_failed",
    "task_end",
    "level_end",
    "canceled",
    "done",
    "end",
]


@dataclass(frozen=True, slots=True)
class Event:
    type: EventType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, object]:
        return {"type": self.type, "data": self.data, "timestamp": self.timestamp}


_CLOSED = object()


class EventChannel:
    """Ordered, append-only event queue between the executor and one consumer.

    With ``block`` a full queue suspends the publisher until the consumer
    catches up. With ``drop_oldest`` the oldest queued event is discarded and
    counted in ``dropped``; the closing sentinel is never dropped.
    """

    def __init__(self, maxsize: int = 256, policy: QueuePolicy = "block") -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        if policy not in ("block", "drop_oldest"):
            raise ValueError(f"unknown queue policy: {policy}")
        self.policy = policy
        self.dropped = 0
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(self, event: Event) -> None:
        if self._closed:
            raise RuntimeError("event channel is closed")
        if self.policy == "drop_oldest":
            while self._queue.full():
                self._queue.get_nowait()
                self.dropped += 1
            self._queue.put_nowait(event)
            return
        await self._queue.put(event)

    async def __call__(self, event: Event) -> None:
        await self.publish(event)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.policy == "drop_oldest":
            while self._queue.full():
                self._queue.get_nowait()
                self.dropped += 1
            self._queue.put_nowait(_CLOSED)
            return
        await self._queue.put(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[Event]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield cast(Event, item)
