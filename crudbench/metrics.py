from __future__ import annotations

import datetime
import logging
import math
import os
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import psutil

from .config import Operation, ScenarioSpec
from .load import LoadStatistics

LOGGER = logging.getLogger("crudbench.benchmark.metrics")

BYTES_PER_MB = 1024.0 * 1024.0


class NoSuccessfulSamplesError(RuntimeError):
    """Raised when a scenario finishes without a single successful request."""


class MemoryProbe(Protocol):
    def memory_mb(self) -> float: ...


class ProcessMemoryProbe:
    """Resident set size of a local process, the harness itself by default."""

    def __init__(self, pid: int | None = None) -> None:
        self._process = psutil.Process(pid or os.getpid())

    def memory_mb(self) -> float:
        return self._process.memory_info().rss / BYTES_PER_MB


@dataclass(frozen=True)
class BenchmarkResult:
    api_type: str
    operation: str
    dataset_size: int
    avg_latency_ms: float
    p50: float
    p90: float
    p99: float
    throughput_rps: float
    memory_mb: float | None
    error_rate: float
    timestamp: datetime.datetime

    def to_record(self) -> dict[str, Any]:
        return {
            "apiType": self.api_type,
            "operation": self.operation,
            "datasetSize": self.dataset_size,
            "avgLatencyMs": self.avg_latency_ms,
            "p50": self.p50,
            "p90": self.p90,
            "p99": self.p99,
            "throughputRps": self.throughput_rps,
            "memoryMb": self.memory_mb,
            "errorRate": self.error_rate,
            "timestamp": self.timestamp.isoformat(),
        }


def percentile(sorted_samples: Sequence[float], quantile: float) -> float:
    """Nearest-rank percentile: the sample at ``floor(n * q)``, no interpolation.

    Biased upwards for small sample counts; kept as-is so results stay
    comparable with earlier sweeps.
    """
    if not sorted_samples:
        raise NoSuccessfulSamplesError("No successful samples to compute percentiles from")
    if not 0.0 <= quantile < 1.0:
        raise ValueError(f"quantile must be in [0, 1), got {quantile}")
    return sorted_samples[int(math.floor(len(sorted_samples) * quantile))]


def error_rate(total: int, failed: int) -> float:
    if total <= 0:
        return 0.0
    return failed / total * 100.0


def throughput(total: int, elapsed_s: float) -> float:
    if elapsed_s <= 0:
        return 0.0
    return total / elapsed_s


def aggregate(
    latencies_ms: Sequence[float],
    total: int,
    failed: int,
    elapsed_s: float,
    memory_mb: float | None,
    *,
    api_type: str,
    operation: Operation | str,
    dataset_size: int,
    timestamp: datetime.datetime | None = None,
) -> BenchmarkResult:
    if not latencies_ms:
        raise NoSuccessfulSamplesError(
            f"No successful samples for {api_type}/{Operation.parse(operation).value}/"
            f"{dataset_size} ({failed}/{total} requests failed)"
        )
    samples = sorted(latencies_ms)
    return BenchmarkResult(
        api_type=api_type,
        operation=Operation.parse(operation).value,
        dataset_size=dataset_size,
        avg_latency_ms=sum(samples) / len(samples),
        p50=percentile(samples, 0.50),
        p90=percentile(samples, 0.90),
        p99=percentile(samples, 0.99),
        throughput_rps=throughput(total, elapsed_s),
        memory_mb=memory_mb,
        error_rate=error_rate(total, failed),
        timestamp=timestamp or datetime.datetime.now(datetime.timezone.utc),
    )


class MetricsAggregator:
    """Reduce a finished load run into a BenchmarkResult."""

    def __init__(self, memory_probe: MemoryProbe | None = None) -> None:
        self._memory_probe = memory_probe or ProcessMemoryProbe()

    def aggregate(self, scenario: ScenarioSpec, stats: LoadStatistics) -> BenchmarkResult:
        result = aggregate(
            stats.latencies_ms,
            stats.total,
            stats.failed,
            stats.duration_s,
            self._sample_memory(scenario),
            api_type=scenario.variant,
            operation=scenario.operation,
            dataset_size=scenario.dataset_size,
        )
        LOGGER.info(
            "%s completed: avg=%.2fms p50=%.2fms p90=%.2fms p99=%.2fms throughput=%.1frps errors=%.2f%%",
            scenario.describe(),
            result.avg_latency_ms,
            result.p50,
            result.p90,
            result.p99,
            result.throughput_rps,
            result.error_rate,
        )
        return result

    def _sample_memory(self, scenario: ScenarioSpec) -> float | None:
        try:
            return self._memory_probe.memory_mb()
        except Exception:  # noqa: BLE001
            LOGGER.warning(
                "Memory sampling failed for %s, no memory value recorded",
                scenario.describe(),
                exc_info=True,
            )
            return None
