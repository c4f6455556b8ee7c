from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from .metrics import BenchmarkResult

LOGGER = logging.getLogger("crudbench.benchmark.sink")

RESULT_COLUMNS = [
    "apiType",
    "operation",
    "datasetSize",
    "avgLatencyMs",
    "p50",
    "p90",
    "p99",
    "throughputRps",
    "memoryMb",
    "errorRate",
    "timestamp",
]

BASELINE_VARIANT = "JIT"
CANDIDATE_VARIANT = "AOT"


def artifact_name(started_at: datetime.datetime) -> str:
    return f"benchmark-results-{started_at:%Y%m%d-%H%M%S}.json"


def results_frame(results: Iterable[BenchmarkResult]) -> pd.DataFrame:
    rows = [result.to_record() for result in results]
    if not rows:
        return pd.DataFrame(columns=RESULT_COLUMNS)
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def _improvement(baseline: pd.Series, candidate: pd.Series, lower_is_better: bool) -> pd.Series:
    baseline = baseline.astype(float).replace(0.0, np.nan)
    candidate = candidate.astype(float)
    delta = baseline - candidate if lower_is_better else candidate - baseline
    return delta / baseline * 100.0


def build_comparison(
    results: Iterable[BenchmarkResult],
    baseline: str = BASELINE_VARIANT,
    candidate: str = CANDIDATE_VARIANT,
) -> pd.DataFrame:
    """Pair baseline and candidate records per (operation, datasetSize).

    Improvements are percentages relative to the baseline; positive means the
    candidate did better. A zero or missing value on either side yields NaN.
    Combinations missing either variant are dropped.
    """
    df = results_frame(results)
    keys = ["operation", "datasetSize"]
    metrics = ["avgLatencyMs", "p99", "throughputRps", "memoryMb"]
    left = df[df["apiType"] == baseline][keys + metrics]
    right = df[df["apiType"] == candidate][keys + metrics]
    paired = left.merge(
        right, on=keys, how="inner", suffixes=(f"_{baseline}", f"_{candidate}")
    )

    def column(metric: str, variant: str) -> pd.Series:
        return paired[f"{metric}_{variant}"]

    paired["avgLatencyImprovement"] = _improvement(
        column("avgLatencyMs", baseline), column("avgLatencyMs", candidate), True
    )
    paired["p99Improvement"] = _improvement(
        column("p99", baseline), column("p99", candidate), True
    )
    paired["throughputImprovement"] = _improvement(
        column("throughputRps", baseline), column("throughputRps", candidate), False
    )
    paired["memoryImprovement"] = _improvement(
        column("memoryMb", baseline), column("memoryMb", candidate), True
    )
    return paired.reset_index(drop=True)


class ResultsSink:
    """Persist a finished sweep under a configured output directory."""

    def __init__(self, output_dir: Path | str) -> None:
        self._output_dir = Path(output_dir)

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def write(
        self,
        results: Sequence[BenchmarkResult],
        started_at: datetime.datetime,
    ) -> Path:
        self._output_dir.mkdir(parents=True, exist_ok=True)
        path = self._output_dir / artifact_name(started_at)
        with open(path, "w", encoding="utf-8") as f:
            json.dump([result.to_record() for result in results], f, indent=2)
        LOGGER.info("Results saved to %s (%d records)", path, len(results))
        return path

    def write_csv(self, results: Sequence[BenchmarkResult], artifact: Path) -> Path:
        path = artifact.with_suffix(".csv")
        results_frame(results).to_csv(path, index=False)
        LOGGER.info("Saved CSV results to %s", path)
        return path

    def write_comparison(self, results: Sequence[BenchmarkResult], artifact: Path) -> Path:
        path = artifact.with_name(artifact.stem + "-comparison.csv")
        build_comparison(results).to_csv(path, index=False)
        LOGGER.info("Saved variant comparison to %s", path)
        return path
