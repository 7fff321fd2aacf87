"""
Run metrics for the agent loop, kept in process.

Each series is a metric name plus a label set. Timings keep running
totals instead of raw samples, so a long-lived process holds a fixed
amount of state per series.

    from agentloop.core.metrics import metrics

    metrics.inc("loop.decisions", labels={"decision": "continue"})
    metrics.observe("tools.duration_ms", 12.5, labels={"tool": "echo"})

    metrics.snapshot()["counters"]["loop.decisions"]  # {"decision=continue": 1}
"""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass

Labels = tuple[tuple[str, str], ...]


def _labels(labels: dict | None) -> Labels:
    return tuple(sorted((str(k), str(v)) for k, v in (labels or {}).items()))


def _label_str(labels: Labels) -> str:
    return ",".join(f"{k}={v}" for k, v in labels)


@dataclass
class Timing:
    """Running summary of one timing series, in milliseconds."""

    count: int = 0
    total: float = 0.0
    min: float = float("inf")
    max: float = 0.0

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.min = min(self.min, value)
        self.max = max(self.max, value)

    def summary(self) -> dict:
        return {
            "count": self.count,
            "avg": round(self.total / self.count, 3),
            "min": round(self.min, 3),
            "max": round(self.max, 3),
        }


class RunMetrics:
    def __init__(self) -> None:
        self._started = time.monotonic()
        self._counters: dict[str, dict[Labels, int]] = defaultdict(dict)
        self._gauges: dict[str, dict[Labels, float]] = defaultdict(dict)
        self._timings: dict[str, dict[Labels, Timing]] = defaultdict(dict)

    def inc(self, name: str, value: int = 1, labels: dict | None = None) -> None:
        series = self._counters[name]
        key = _labels(labels)
        series[key] = series.get(key, 0) + value

    def counter(self, name: str, labels: dict | None = None) -> int:
        return self._counters.get(name, {}).get(_labels(labels), 0)

    def observe(self, name: str, value: float, labels: dict | None = None) -> None:
        self._timings[name].setdefault(_labels(labels), Timing()).add(value)

    def gauge_inc(self, name: str, value: float = 1.0, labels: dict | None = None) -> None:
        series = self._gauges[name]
        key = _labels(labels)
        series[key] = series.get(key, 0.0) + value

    def gauge_dec(self, name: str, value: float = 1.0, labels: dict | None = None) -> None:
        self.gauge_inc(name, -value, labels)

    def snapshot(self) -> dict:
        """Every series grouped by metric name, then by ``k=v`` label string.

        An unlabelled series sits under the empty string.
        """
        return {
            "uptime_seconds": round(time.monotonic() - self._started, 1),
            "counters": {
                name: {_label_str(k): v for k, v in series.items()}
                for name, series in self._counters.items()
            },
            "gauges": {
                name: {_label_str(k): v for k, v in series.items()}
                for name, series in self._gauges.items()
            },
            "timings": {
                name: {_label_str(k): t.summary() for k, t in series.items()}
                for name, series in self._timings.items()
            },
        }

    def reset(self) -> None:
        self._counters.clear()
        self._gauges.clear()
        self._timings.clear()


metrics = RunMetrics()
