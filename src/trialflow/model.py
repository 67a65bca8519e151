"""Runtime data model shared by the orchestration components."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Sequence, Tuple

if TYPE_CHECKING:
    from .stopping import StopFlag


class TrialflowError(RuntimeError):
    """Base class for errors raised by the orchestration core."""


class EndState(str, Enum):
    """Terminal reason recorded once per orchestrator run."""

    ALL_TRIALS_COMPLETED = "all_trials_completed"
    TIMEOUT = "timeout"
    STOPPED_BY_USER = "stopped_by_user"
    DIRECTION_COUNT_MISMATCH = "direction_count_mismatch"
    CONTINUE_PRECONDITION_FAILED = "continue_precondition_failed"
    ERROR = "error"


class GcPolicy(str, Enum):
    """When to call the resource reclamation hook after a trial."""

    ALWAYS = "always"
    HAS_ARTIFACTS = "has_artifacts"
    NEVER = "never"

    def should_reclaim(self, has_artifacts: bool) -> bool:
        if self is GcPolicy.ALWAYS:
            return True
        if self is GcPolicy.HAS_ARTIFACTS:
            return has_artifacts
        return False


@dataclass(frozen=True)
class Variable:
    """A single optimized dimension.

    ``step`` is mandatory for integer variables (default 1) and optional for
    continuous ones, where ``None`` means the dimension is sampled continuously.
    """

    name: str
    lower_bound: float
    upper_bound: float
    is_integer: bool = False
    step: float | None = None

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("variable name must be a non-empty string")
        if not (math.isfinite(self.lower_bound) and math.isfinite(self.upper_bound)):
            raise ValueError(f"variable '{self.name}' bounds must be finite")
        if self.step is not None and self.step <= 0:
            raise ValueError(f"variable '{self.name}' step must be positive")
        if self.is_integer:
            if self.step is not None and float(self.step) != int(self.step):
                raise ValueError(f"integer variable '{self.name}' requires an integral step")
            low, high = self.integer_bounds()
            if low > high:
                raise ValueError(
                    f"integer variable '{self.name}' has no multiple of its step within bounds"
                )
        elif self.lower_bound >= self.upper_bound:
            raise ValueError(f"variable '{self.name}' requires lower_bound < upper_bound")

    @property
    def integer_step(self) -> int:
        return int(self.step) if self.step is not None else 1

    def integer_bounds(self) -> Tuple[int, int]:
        """Return the smallest and largest step multiples inside the bounds."""

        step = self.integer_step
        low = math.ceil(self.lower_bound / step) * step
        high = math.floor(self.upper_bound / step) * step
        return int(low), int(high)

    def contains(self, value: float) -> bool:
        if value < self.lower_bound or value > self.upper_bound:
            return False
        if self.is_integer:
            return float(value) == int(value) and int(value) % self.integer_step == 0
        return True


@dataclass(frozen=True)
class ObjectiveSpec:
    """Ordered objective names. Every objective is minimized."""

    names: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.names:
            raise ValueError("at least one objective is required")
        if len(set(self.names)) != len(self.names):
            raise ValueError("objective names must be unique")

    @classmethod
    def of(cls, names: Sequence[str]) -> "ObjectiveSpec":
        return cls(tuple(str(name) for name in names))

    def __len__(self) -> int:
        return len(self.names)

    @property
    def directions(self) -> List[str]:
        return ["minimize"] * len(self.names)


@dataclass
class TrialRecord:
    """One ask/tell cycle as seen by the orchestrator."""

    index: int
    parameters: List[float]
    objective_values: List[float] = field(default_factory=list)
    attributes: Dict[str, List[str]] = field(default_factory=dict)
    artifacts: List[Any] = field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class ProgressState:
    """Telemetry snapshot reported once per cycle."""

    trial_number: int
    objective_count: int
    best_values: List[Tuple[float, ...]] | None
    current_parameters: List[Decimal]
    hypervolume_ratio: float
    estimated_time_remaining: timedelta


@dataclass
class RunConfig:
    """Run limits and switches consumed by the orchestrator."""

    max_trials: int
    stop_flag: "StopFlag"
    timeout_seconds: float = 0.0
    human_in_the_loop_batch_size: int | None = None
    gc_policy: GcPolicy = GcPolicy.HAS_ARTIFACTS
    realtime_telemetry: bool = True
    max_nan_retries: int = 10
    poll_interval_seconds: float = 0.1

    def __post_init__(self) -> None:
        if self.max_trials <= 0:
            raise ValueError("max_trials must be a positive integer")
        if self.human_in_the_loop_batch_size is not None and self.human_in_the_loop_batch_size <= 0:
            raise ValueError("human_in_the_loop_batch_size must be positive when provided")
        if self.max_nan_retries <= 0:
            raise ValueError("max_nan_retries must be positive")

    @property
    def has_timeout(self) -> bool:
        return self.timeout_seconds > 0

    @property
    def human_in_the_loop(self) -> bool:
        return self.human_in_the_loop_batch_size is not None


__all__ = [
    "EndState",
    "TrialflowError",
    "GcPolicy",
    "ObjectiveSpec",
    "ProgressState",
    "RunConfig",
    "TrialRecord",
    "Variable",
]
