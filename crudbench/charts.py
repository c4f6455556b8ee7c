from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from .metrics import BenchmarkResult
from .sink import build_comparison, results_frame

LOGGER = logging.getLogger("crudbench.benchmark.charts")

sns.set_style("whitegrid")
plt.rcParams["figure.dpi"] = 100
plt.rcParams["savefig.dpi"] = 300
plt.rcParams["font.size"] = 10
plt.rcParams["axes.labelsize"] = 11
plt.rcParams["axes.titlesize"] = 13
plt.rcParams["xtick.labelsize"] = 10
plt.rcParams["ytick.labelsize"] = 10
plt.rcParams["legend.fontsize"] = 9
plt.rcParams["figure.titlesize"] = 14

VARIANT_COLORS = {
    "JIT": "#C73E1D",
    "AOT": "#6A994E",
}

OPERATION_ORDER = ["CREATE", "READ", "UPDATE", "DELETE", "BULK_READ"]


def render_comparison_charts(
    results: Sequence[BenchmarkResult],
    output_dir: Path,
    prefix: str = "benchmark",
) -> list[Path]:
    """Render latency, throughput and memory comparison charts for a sweep."""
    df = results_frame(results)
    if df.empty:
        LOGGER.warning("No results available, skipping charts")
        return []

    output_dir.mkdir(parents=True, exist_ok=True)
    df = df.copy()
    df["memoryMb"] = df["memoryMb"].astype(float)
    df["scenario"] = df.apply(_scenario_label, axis=1)
    order = _scenario_order(df)

    paths = [
        _render_latency_chart(df, order, output_dir / f"{prefix}-latency.png"),
        _render_metric_chart(
            df,
            order,
            "throughputRps",
            "Throughput (requests/s)",
            "Throughput Comparison",
            output_dir / f"{prefix}-throughput.png",
        ),
    ]
    if df["memoryMb"].notna().any():
        paths.append(
            _render_metric_chart(
                df,
                order,
                "memoryMb",
                "Memory (MB)",
                "Memory Usage Comparison",
                output_dir / f"{prefix}-memory.png",
            )
        )
    else:
        LOGGER.warning("No memory samples recorded, skipping memory chart")

    comparison = build_comparison(results)
    if not comparison.empty:
        paths.append(
            _render_improvement_heatmap(comparison, output_dir / f"{prefix}-improvement.png")
        )
    return paths


def _scenario_label(row: pd.Series) -> str:
    return f"{row['operation']} ({int(row['datasetSize']):,})"


def _scenario_order(df: pd.DataFrame) -> list[str]:
    ranked = df.assign(
        _op=df["operation"].map(
            lambda op: OPERATION_ORDER.index(op) if op in OPERATION_ORDER else len(OPERATION_ORDER)
        )
    ).sort_values(["_op", "datasetSize"])
    return list(dict.fromkeys(ranked["scenario"]))


def _palette(df: pd.DataFrame) -> dict[str, str]:
    return {variant: VARIANT_COLORS.get(variant, "#808080") for variant in df["apiType"].unique()}


def _render_latency_chart(df: pd.DataFrame, order: list[str], chart_path: Path) -> Path:
    """Grouped bars of average and p99 latency per scenario and variant."""
    long_df = df.melt(
        id_vars=["scenario", "apiType"],
        value_vars=["avgLatencyMs", "p99"],
        var_name="statistic",
        value_name="latency_ms",
    )
    long_df["series"] = long_df["apiType"] + " " + long_df["statistic"].map(
        {"avgLatencyMs": "Avg", "p99": "P99"}
    )

    fig, ax = plt.subplots(figsize=(max(10, len(order) * 1.2), 6))
    sns.barplot(
        data=long_df,
        x="scenario",
        y="latency_ms",
        hue="series",
        order=order,
        errorbar=None,
        ax=ax,
        linewidth=1.0,
        edgecolor="white",
    )
    ax.set_xlabel("Operation (dataset size)", fontweight="semibold", labelpad=10)
    ax.set_ylabel("Latency (ms)", fontweight="semibold", labelpad=10)
    ax.set_title("Latency Comparison", fontweight="bold", pad=15)
    ax.tick_params(axis="x", rotation=45)
    ax.grid(True, alpha=0.3, axis="y", linestyle="--")
    ax.legend(title="Variant", frameon=True, fancybox=True, shadow=True)

    plt.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path


def _render_metric_chart(
    df: pd.DataFrame,
    order: list[str],
    column: str,
    ylabel: str,
    title: str,
    chart_path: Path,
) -> Path:
    fig, ax = plt.subplots(figsize=(max(10, len(order) * 1.2), 6))
    sns.barplot(
        data=df,
        x="scenario",
        y=column,
        hue="apiType",
        order=order,
        errorbar=None,
        palette=_palette(df),
        ax=ax,
        alpha=0.85,
        edgecolor="white",
        linewidth=1.5,
    )
    ax.set_xlabel("Operation (dataset size)", fontweight="semibold", labelpad=10)
    ax.set_ylabel(ylabel, fontweight="semibold", labelpad=10)
    ax.set_title(title, fontweight="bold", pad=15)
    ax.tick_params(axis="x", rotation=45)
    ax.grid(True, alpha=0.3, axis="y", linestyle="--")

    for container in ax.containers:
        ax.bar_label(container, fmt="%.1f", fontsize=8, padding=2)

    plt.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path


def _render_improvement_heatmap(comparison: pd.DataFrame, chart_path: Path) -> Path:
    """Heatmap of AOT-over-JIT improvement percentages per scenario."""
    columns = {
        "avgLatencyImprovement": "Avg latency",
        "p99Improvement": "P99",
        "throughputImprovement": "Throughput",
        "memoryImprovement": "Memory",
    }
    labels = comparison.apply(_scenario_label, axis=1)
    matrix = comparison[list(columns)].astype(float).to_numpy()
    limit = float(np.nanmax(np.abs(matrix))) if np.isfinite(matrix).any() else 0.0
    limit = limit or 1.0

    fig, ax = plt.subplots(figsize=(10, max(4, len(labels) * 0.5)))
    sns.heatmap(
        matrix,
        annot=True,
        fmt=".1f",
        xticklabels=list(columns.values()),
        yticklabels=list(labels),
        cmap="RdYlGn",
        center=0,
        vmin=-limit,
        vmax=limit,
        cbar_kws={"label": "Improvement (%)"},
        ax=ax,
    )
    ax.set_xlabel("Metric", fontweight="semibold")
    ax.set_ylabel("Operation (dataset size)", fontweight="semibold")
    ax.set_title("AOT Improvement over JIT (%)", fontweight="bold", pad=15)

    plt.tight_layout()
    fig.savefig(chart_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", chart_path)
    return chart_path
