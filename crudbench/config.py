from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Iterator, Sequence


class ConfigurationError(ValueError):
    """Raised when the sweep configuration is fundamentally broken."""


class UnknownOperationError(ConfigurationError):
    """Raised for operation tags outside the supported set."""


class Operation(str, enum.Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    BULK_READ = "BULK_READ"

    @classmethod
    def parse(cls, value: "Operation | str") -> "Operation":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError as exc:
            raise UnknownOperationError(f"Unknown operation: {value!r}") from exc


DEFAULT_DATASET_SIZES: tuple[int, ...] = (1_000, 10_000, 100_000)
DEFAULT_OPERATIONS: tuple[Operation, ...] = tuple(Operation)


@dataclass(frozen=True)
class Variant:
    """One API build under comparison."""

    label: str
    base_url: str
    container: str | None = None

    def __post_init__(self) -> None:
        if not self.label:
            raise ConfigurationError("Variant label must not be empty")
        if not self.base_url:
            raise ConfigurationError(f"Variant {self.label} has no base URL")


@dataclass(frozen=True)
class ScenarioSpec:
    """Single timed load run against one variant/operation/dataset size."""

    variant: str
    base_url: str
    operation: Operation
    dataset_size: int
    duration_seconds: float
    rate: int
    warmup: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "operation", Operation.parse(self.operation))
        if not self.base_url:
            raise ConfigurationError(f"Scenario for {self.variant} has no base URL")
        if self.duration_seconds <= 0:
            raise ConfigurationError("duration_seconds must be > 0")
        if self.rate <= 0:
            raise ConfigurationError("rate must be > 0")
        if self.dataset_size <= 0:
            raise ConfigurationError("dataset_size must be > 0")

    @property
    def batch_size(self) -> int:
        return max(1, self.rate // 10)

    def describe(self) -> str:
        return f"{self.variant}/{self.operation.value}/{self.dataset_size}"


@dataclass(frozen=True)
class SweepPlan:
    """Matrix of dataset sizes and operations, plus per-scenario timing."""

    dataset_sizes: Sequence[int] = DEFAULT_DATASET_SIZES
    operations: Sequence[Operation] = DEFAULT_OPERATIONS
    duration_seconds: float = 30.0
    rate: int = 100
    cooldown_seconds: float = 5.0
    warmup_pause_seconds: float = 1.0
    request_timeout_seconds: float = 30.0
    warmup: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "operations", tuple(Operation.parse(op) for op in self.operations)
        )
        object.__setattr__(self, "dataset_sizes", tuple(int(s) for s in self.dataset_sizes))
        if not self.dataset_sizes:
            raise ConfigurationError("At least one dataset size is required")
        if not self.operations:
            raise ConfigurationError("At least one operation is required")
        if any(size <= 0 for size in self.dataset_sizes):
            raise ConfigurationError("Dataset sizes must be positive")
        if self.duration_seconds <= 0:
            raise ConfigurationError("duration_seconds must be > 0")
        if self.rate <= 0:
            raise ConfigurationError("rate must be > 0")
        if self.cooldown_seconds < 0 or self.warmup_pause_seconds < 0:
            raise ConfigurationError("Pauses must not be negative")
        if self.request_timeout_seconds <= 0:
            raise ConfigurationError("request_timeout_seconds must be > 0")

    def combinations(self) -> Iterator[tuple[int, Operation]]:
        for dataset_size in self.dataset_sizes:
            for operation in self.operations:
                yield dataset_size, operation

    def scenario(self, variant: Variant, operation: Operation, dataset_size: int) -> ScenarioSpec:
        return ScenarioSpec(
            variant=variant.label,
            base_url=variant.base_url,
            operation=operation,
            dataset_size=dataset_size,
            duration_seconds=self.duration_seconds,
            rate=self.rate,
            warmup=self.warmup,
        )

    def scenario_count(self, variants: int) -> int:
        return len(self.dataset_sizes) * len(self.operations) * variants


def default_sweep_plan() -> SweepPlan:
    """Return the default JIT vs AOT sweep: 3 dataset sizes x 5 operations."""

    return SweepPlan()


def parse_operations(value: str | Iterable[str] | None) -> tuple[Operation, ...]:
    if value is None:
        return DEFAULT_OPERATIONS
    items = value.split(",") if isinstance(value, str) else list(value)
    operations = tuple(Operation.parse(item) for item in items if str(item).strip())
    if not operations:
        raise ConfigurationError("At least one operation is required")
    return operations


def parse_dataset_sizes(value: str | Iterable[int] | None) -> tuple[int, ...]:
    if value is None:
        return DEFAULT_DATASET_SIZES
    items = value.split(",") if isinstance(value, str) else list(value)
    sizes: list[int] = []
    for item in items:
        text = str(item).strip().replace("_", "")
        if not text:
            continue
        try:
            size = int(text)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid dataset size {item!r}") from exc
        if size <= 0:
            raise ConfigurationError(f"Dataset size must be positive, got {size}")
        sizes.append(size)
    if not sizes:
        raise ConfigurationError("At least one dataset size is required")
    return tuple(sizes)
