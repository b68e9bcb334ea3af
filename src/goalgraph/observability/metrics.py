"""In-process counter/histogram sink."""

from __future__ import annotations

from collections import Counter, defaultdict, deque
from dataclasses import dataclass
from typing import Protocol

HISTOGRAM_WINDOW = 1000


class MetricsSink(Protocol):
    def inc(self, key: str, value: int = 1) -> None: ...

    def record(self, key: str, value: float) -> None: ...


@dataclass(slots=True)
class HistogramSummary:
    count: int
    mean: float
    p95: float


class MetricsCollector:
    def __init__(self) -> None:
        self._counters: Counter[str] = Counter()
        self._histograms: defaultdict[str, deque[float]] = defaultdict(
            lambda: deque(maxlen=HISTOGRAM_WINDOW)
        )

    def inc(self, key: str, value: int = 1) -> None:
        self._counters[key] += value

    def record(self, key: str, value: float) -> None:
        self._histograms[key].append(value)

    def counter(self, key: str) -> int:
        return self._counters[key]

    def snapshot(self) -> dict[str, dict[str, object]]:
        histograms: dict[str, object] = {}
        for key, values in self._histograms.items():
            if not values:
                histograms[key] = HistogramSummary(0, 0.0, 0.0)
                continue
            ordered = sorted(values)
            p95 = ordered[min(len(ordered) - 1, int(len(ordered) * 0.95))]
            histograms[key] = HistogramSummary(len(ordered), sum(ordered) / len(ordered), p95)
        return {"counters": dict(self._counters), "histograms": histograms}
