"""Minimal in-process counters."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict


class MetricsStore:
    """Counters shared by every connection on the event loop."""

    def __init__(self) -> None:
        self._counters: Dict[str, float] = defaultdict(float)

    def inc(self, name: str, value: float = 1.0) -> None:
        self._counters[name] += float(value)

    def get(self, name: str) -> float:
        return self._counters.get(name, 0.0)

    def snapshot(self) -> Dict[str, float]:
        return dict(self._counters)
