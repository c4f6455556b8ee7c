from __future__ import annotations

import datetime
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

from .config import ConfigurationError, ScenarioSpec, SweepPlan, Variant
from .dispatcher import RequestDispatcher, create_session
from .docker_control import ContainerMemoryProbe
from .load import LoadGenerator
from .metrics import BenchmarkResult, MemoryProbe, MetricsAggregator, ProcessMemoryProbe
from .sink import ResultsSink

LOGGER = logging.getLogger("crudbench.benchmark.sweep")

DispatcherFactory = Callable[[Variant, ScenarioSpec], RequestDispatcher]
ProbeFactory = Callable[[Variant], MemoryProbe]


class ScenarioAbandoned(RuntimeError):
    """Raised when a stop signal cuts a scenario short before its deadline."""


@dataclass
class SweepReport:
    started_at: datetime.datetime
    results: list[BenchmarkResult] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    artifact: Path | None = None
    write_error: str | None = None
    cancelled: bool = False


class ScenarioSweep:
    """Run every (dataset size, operation, variant) scenario one at a time."""

    def __init__(
        self,
        plan: SweepPlan,
        variants: Sequence[Variant],
        sink: ResultsSink | None = None,
        stop_event: threading.Event | None = None,
        dispatcher_factory: DispatcherFactory | None = None,
        probe_factory: ProbeFactory | None = None,
    ) -> None:
        if not variants:
            raise ConfigurationError("At least one API variant is required")
        self._plan = plan
        self._variants = list(variants)
        self._sink = sink
        self._stop_event = stop_event or threading.Event()
        self._dispatcher_factory = dispatcher_factory or self._default_dispatcher
        self._probe_factory = probe_factory or _default_probe_factory()

    def run(self) -> SweepReport:
        report = SweepReport(started_at=datetime.datetime.now(datetime.timezone.utc))
        total = self._plan.scenario_count(len(self._variants))
        index = 0

        for dataset_size, operation in self._plan.combinations():
            LOGGER.info(
                "=== %s with dataset size %d ===", operation.value, dataset_size
            )
            for variant in self._variants:
                if index > 0 and self._cooldown():
                    break
                if self._stop_event.is_set():
                    break
                index += 1
                scenario = self._plan.scenario(variant, operation, dataset_size)
                LOGGER.info(
                    "Running scenario %d/%d: %s against %s",
                    index,
                    total,
                    scenario.describe(),
                    scenario.base_url,
                )
                try:
                    report.results.append(self.run_scenario(scenario, variant))
                except ConfigurationError:
                    raise
                except ScenarioAbandoned:
                    LOGGER.warning("Abandoned %s, no result recorded", scenario.describe())
                except Exception:  # noqa: BLE001
                    LOGGER.exception(
                        "Failed to run benchmark for variant=%s operation=%s dataset_size=%d",
                        variant.label,
                        operation.value,
                        dataset_size,
                    )
                    report.failed.append(scenario.describe())
            if self._stop_event.is_set():
                LOGGER.warning("Sweep cancelled after %d/%d scenarios", index, total)
                report.cancelled = True
                break

        if self._sink is not None:
            try:
                report.artifact = self._sink.write(report.results, report.started_at)
            except OSError as exc:
                LOGGER.exception(
                    "Failed to write %d results to %s",
                    len(report.results),
                    self._sink.output_dir,
                )
                report.write_error = f"{type(exc).__name__}: {exc}"
        LOGGER.info(
            "Sweep completed: %d results, %d failed scenarios",
            len(report.results),
            len(report.failed),
        )
        return report

    def run_scenario(self, scenario: ScenarioSpec, variant: Variant) -> BenchmarkResult:
        dispatcher = self._dispatcher_factory(variant, scenario)
        try:
            generator = LoadGenerator(
                scenario,
                dispatcher,
                stop_event=self._stop_event,
                warmup_pause_seconds=self._plan.warmup_pause_seconds,
            )
            stats = generator.run()
        finally:
            dispatcher.close()
        if stats.cancelled:
            raise ScenarioAbandoned(scenario.describe())
        return MetricsAggregator(self._probe_factory(variant)).aggregate(scenario, stats)

    def stop(self) -> None:
        self._stop_event.set()

    def _cooldown(self) -> bool:
        """Pause between scenarios; True when the pause was cut short by stop."""
        if self._plan.cooldown_seconds <= 0:
            return self._stop_event.is_set()
        LOGGER.debug("Cooling down for %.1fs", self._plan.cooldown_seconds)
        return self._stop_event.wait(timeout=self._plan.cooldown_seconds)

    def _default_dispatcher(self, variant: Variant, scenario: ScenarioSpec) -> RequestDispatcher:
        return RequestDispatcher(
            variant.base_url,
            session=create_session(pool_size=scenario.batch_size),
            timeout_s=self._plan.request_timeout_seconds,
        )


def _default_probe_factory() -> ProbeFactory:
    probes: dict[str, MemoryProbe] = {}

    def factory(variant: Variant) -> MemoryProbe:
        key = variant.container or ""
        if key not in probes:
            probes[key] = (
                ContainerMemoryProbe(variant.container)
                if variant.container
                else ProcessMemoryProbe()
            )
        return probes[key]

    return factory
