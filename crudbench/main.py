from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from pathlib import Path

from .config import (
    ConfigurationError,
    SweepPlan,
    Variant,
    parse_dataset_sizes,
    parse_operations,
)
from .sink import ResultsSink
from .sweep import ScenarioSweep

LOGGER = logging.getLogger("crudbench.benchmark")


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes", "on"}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="JIT vs AOT CRUD API Benchmark Runner")
    parser.add_argument(
        "--jit-url",
        default=os.environ.get("JIT_API_URL", "http://localhost:5000"),
        help="Base URL of the JIT compiled API",
    )
    parser.add_argument(
        "--aot-url",
        default=os.environ.get("AOT_API_URL", "http://localhost:5001"),
        help="Base URL of the AOT compiled API",
    )
    parser.add_argument(
        "--jit-container",
        default=os.environ.get("JIT_CONTAINER"),
        help="Docker container running the JIT API, used for memory sampling",
    )
    parser.add_argument(
        "--aot-container",
        default=os.environ.get("AOT_CONTAINER"),
        help="Docker container running the AOT API, used for memory sampling",
    )
    parser.add_argument(
        "--output-dir",
        default=os.environ.get("BENCHMARK_OUTPUT_DIR", "./benchmark-results"),
        help="Directory to store benchmark artefacts",
    )
    parser.add_argument(
        "--dataset-sizes",
        default=os.environ.get("BENCHMARK_DATASET_SIZES", "1000,10000,100000"),
        help="Comma-separated dataset sizes to label scenarios with",
    )
    parser.add_argument(
        "--operations",
        default=os.environ.get("BENCHMARK_OPERATIONS", "CREATE,READ,UPDATE,DELETE,BULK_READ"),
        help="Comma-separated operations to benchmark",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=os.environ.get("BENCHMARK_DURATION_SECONDS", "30"),
        help="Seconds of timed load per scenario",
    )
    parser.add_argument(
        "--rate",
        type=int,
        default=os.environ.get("BENCHMARK_RATE", "100"),
        help="Target requests per second",
    )
    parser.add_argument(
        "--cooldown",
        type=float,
        default=os.environ.get("BENCHMARK_COOLDOWN_SECONDS", "5"),
        help="Pause between consecutive scenario runs",
    )
    parser.add_argument(
        "--warmup-pause",
        type=float,
        default=os.environ.get("BENCHMARK_WARMUP_PAUSE_SECONDS", "1"),
        help="Pause after the liveness probe before timed load starts",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=os.environ.get("BENCHMARK_REQUEST_TIMEOUT", "30"),
        help="Per-request timeout in seconds",
    )
    parser.add_argument(
        "--no-warmup",
        action="store_true",
        help="Skip the liveness probe before each scenario",
    )
    parser.add_argument(
        "--csv",
        action="store_true",
        default=_env_flag("BENCHMARK_WRITE_CSV"),
        help="Also write CSV copies of the results and the variant comparison",
    )
    parser.add_argument(
        "--charts",
        action="store_true",
        default=_env_flag("BENCHMARK_RENDER_CHARTS"),
        help="Render comparison charts next to the results artifact",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the planned scenarios without executing them",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("BENCHMARK_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_plan(args: argparse.Namespace) -> SweepPlan:
    return SweepPlan(
        dataset_sizes=parse_dataset_sizes(args.dataset_sizes),
        operations=parse_operations(args.operations),
        duration_seconds=args.duration,
        rate=args.rate,
        cooldown_seconds=args.cooldown,
        warmup_pause_seconds=args.warmup_pause,
        request_timeout_seconds=args.timeout,
        warmup=not args.no_warmup,
    )


def build_variants(args: argparse.Namespace) -> list[Variant]:
    return [
        Variant(label="JIT", base_url=args.jit_url, container=args.jit_container),
        Variant(label="AOT", base_url=args.aot_url, container=args.aot_container),
    ]


def install_signal_handlers(stop_event: threading.Event) -> None:
    def handler(signum, frame) -> None:
        LOGGER.warning("Received signal %d, stopping after the current window", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        plan = build_plan(args)
        variants = build_variants(args)
    except ConfigurationError as exc:
        LOGGER.error("Invalid benchmark configuration: %s", exc)
        return 2

    output_dir = Path(args.output_dir)
    LOGGER.info("Benchmark Runner Starting")
    for variant in variants:
        LOGGER.info("%s API URL: %s", variant.label, variant.base_url)
    LOGGER.info("Output directory: %s", output_dir)

    if args.dry_run:
        _print_plan(plan, variants)
        return 0

    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    sink = ResultsSink(output_dir)
    sweep = ScenarioSweep(plan, variants, sink=sink, stop_event=stop_event)
    try:
        report = sweep.run()
    except ConfigurationError as exc:
        LOGGER.error("Sweep aborted: %s", exc)
        return 2

    if report.artifact is not None:
        if args.csv:
            sink.write_csv(report.results, report.artifact)
            sink.write_comparison(report.results, report.artifact)
        if args.charts:
            from .charts import render_comparison_charts

            render_comparison_charts(
                report.results, output_dir, prefix=report.artifact.stem
            )

    LOGGER.info("Benchmark Runner Completed. Total results: %d", len(report.results))
    if report.failed:
        LOGGER.warning("Failed scenarios: %s", ", ".join(report.failed))
    if report.write_error is not None:
        LOGGER.error("Results were not saved: %s", report.write_error)
        return 1
    if report.cancelled:
        return 130
    return 0 if report.results or not report.failed else 1


def _print_plan(plan: SweepPlan, variants: list[Variant]) -> None:
    print(
        f"Sweep: {plan.scenario_count(len(variants))} scenarios, "
        f"duration={plan.duration_seconds}s rate={plan.rate}rps "
        f"cooldown={plan.cooldown_seconds}s"
    )
    for dataset_size, operation in plan.combinations():
        for variant in variants:
            scenario = plan.scenario(variant, operation, dataset_size)
            print(f"  - {scenario.describe()} -> {scenario.base_url}")


if __name__ == "__main__":
    sys.exit(main())
