"""
Lyceum Metrics — counters and rolling histograms for the tutorial loop.

Lives in process memory and is served as JSON on GET /v1/tutorial/metrics.
Labels are folded into the key: ``session.tool_calls{tool=select_topic}``.

    from lyceum.core.metrics import metrics

    metrics.inc("session.tool_calls", labels={"tool": "select_topic"})
    metrics.observe("session.connect_s", 1.8)
"""

from __future__ import annotations

import statistics
import time
from collections import Counter, deque


def metric_key(name: str, labels: dict | None = None) -> str:
    if not labels:
        return name
    inner = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
    return f"{name}{{{inner}}}"


class Histogram:
    """The most recent `window` observations of one metric."""

    def __init__(self, window: int) -> None:
        self.samples: deque[float] = deque(maxlen=window)

    def add(self, value: float) -> None:
        self.samples.append(value)

    def summary(self) -> dict:
        ordered = sorted(self.samples)
        n = len(ordered)
        return {
            "count": n,
            "min": ordered[0],
            "max": ordered[-1],
            "mean": round(statistics.fmean(ordered), 4),
            "p50": ordered[n // 2],
            "p95": ordered[min(int(n * 0.95), n - 1)],
        }


class MetricsCollector:
    def __init__(self, window: int = 500) -> None:
        self.window = window
        self._counters: Counter[str] = Counter()
        self._histograms: dict[str, Histogram] = {}
        self._since = time.time()

    def inc(self, name: str, value: int = 1, labels: dict | None = None) -> None:
        self._counters[metric_key(name, labels)] += value

    def counter(self, name: str, labels: dict | None = None) -> int:
        return self._counters[metric_key(name, labels)]

    def observe(self, name: str, value: float, labels: dict | None = None) -> None:
        key = metric_key(name, labels)
        if key not in self._histograms:
            self._histograms[key] = Histogram(self.window)
        self._histograms[key].add(value)

    def snapshot(self) -> dict:
        return {
            "uptime_seconds": round(time.time() - self._since, 1),
            "counters": dict(self._counters),
            "histograms": {
                key: hist.summary()
                for key, hist in self._histograms.items()
                if hist.samples
            },
        }

    def reset(self) -> None:
        self._counters.clear()
        self._histograms.clear()
        self._since = time.time()


# Process-wide instance; tests call reset() between cases
metrics = MetricsCollector()
