from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass

import requests

from .collector import SampleAccumulator
from .config import ScenarioSpec
from .dispatcher import RequestDispatcher, RequestOutcome

LOGGER = logging.getLogger("crudbench.benchmark.load")

WINDOW_SECONDS = 0.1


@dataclass
class LoadStatistics:
    latencies_ms: list[float]
    total: int
    failed: int
    started_at: float
    finished_at: float
    windows: int = 0
    cancelled: bool = False

    @property
    def duration_s(self) -> float:
        return max(self.finished_at - self.started_at, 0.0)

    @property
    def achieved_rate(self) -> float:
        if self.duration_s == 0:
            return 0.0
        return self.total / self.duration_s


class LoadGenerator:
    """Fixed-window load generator.

    Every 100 ms window launches ``rate // 10`` concurrent requests, waits for
    the whole batch, then sleeps out whatever is left of the window. Windows
    never overlap, so a slow target lowers the achieved rate instead of piling
    up in-flight requests.
    """

    def __init__(
        self,
        scenario: ScenarioSpec,
        dispatcher: RequestDispatcher,
        stop_event: threading.Event | None = None,
        warmup_pause_seconds: float = 1.0,
    ) -> None:
        self._scenario = scenario
        self._dispatcher = dispatcher
        self._stop_event = stop_event or threading.Event()
        self._warmup_pause_seconds = warmup_pause_seconds
        self._accumulator = SampleAccumulator()

    @property
    def accumulator(self) -> SampleAccumulator:
        return self._accumulator

    def run(self) -> LoadStatistics:
        if self._scenario.warmup:
            self._warmup()

        batch_size = self._scenario.batch_size
        windows = 0
        started_at = time.monotonic()
        deadline = started_at + self._scenario.duration_seconds

        with ThreadPoolExecutor(
            max_workers=batch_size,
            thread_name_prefix=f"load-{self._scenario.variant}",
        ) as pool:
            while time.monotonic() < deadline and not self._stop_event.is_set():
                window_started = time.monotonic()
                futures = [pool.submit(self._dispatch_one) for _ in range(batch_size)]
                wait(futures)
                for future in futures:
                    # Dispatch failures are outcomes; anything raised here is a bug.
                    future.result()
                windows += 1

                remaining = WINDOW_SECONDS - (time.monotonic() - window_started)
                if remaining > 0 and self._stop_event.wait(timeout=remaining):
                    break

        finished_at = time.monotonic()
        snapshot = self._accumulator.snapshot()
        stats = LoadStatistics(
            latencies_ms=snapshot.latencies_ms,
            total=snapshot.total,
            failed=snapshot.failed,
            started_at=started_at,
            finished_at=finished_at,
            windows=windows,
            cancelled=self._stop_event.is_set(),
        )
        LOGGER.info(
            "%s: %d requests (%d failed) in %d windows over %.2fs, achieved %.1f rps (target %d)",
            self._scenario.describe(),
            stats.total,
            stats.failed,
            stats.windows,
            stats.duration_s,
            stats.achieved_rate,
            self._scenario.rate,
        )
        return stats

    def stop(self) -> None:
        self._stop_event.set()

    def _dispatch_one(self) -> RequestOutcome:
        outcome = self._dispatcher.dispatch(self._scenario.operation)
        self._accumulator.record(outcome)
        return outcome

    def _warmup(self) -> None:
        try:
            self._dispatcher.probe()
        except requests.RequestException as exc:
            LOGGER.warning(
                "Warmup probe against %s failed, continuing anyway: %s",
                self._dispatcher.base_url,
                exc,
            )
            return
        self._stop_event.wait(timeout=self._warmup_pause_seconds)
