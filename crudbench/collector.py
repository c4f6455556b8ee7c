from __future__ import annotations

import threading
from dataclasses import dataclass

from .dispatcher import RequestOutcome


@dataclass(frozen=True)
class SampleSnapshot:
    latencies_ms: list[float]
    total: int
    failed: int


class SampleAccumulator:
    """Collects outcomes from concurrent dispatch threads within one scenario."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latencies_ms: list[float] = []
        self._total = 0
        self._failed = 0

    def record(self, outcome: RequestOutcome) -> None:
        with self._lock:
            self._total += 1
            if outcome.ok:
                self._latencies_ms.append(outcome.latency_ms)
            else:
                self._failed += 1

    @property
    def total(self) -> int:
        with self._lock:
            return self._total

    @property
    def failed(self) -> int:
        with self._lock:
            return self._failed

    def snapshot(self) -> SampleSnapshot:
        with self._lock:
            return SampleSnapshot(
                latencies_ms=list(self._latencies_ms),
                total=self._total,
                failed=self._failed,
            )
