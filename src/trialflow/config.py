"""Configuration schema and validation."""

from __future__ import annotations

from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .model import GcPolicy, ObjectiveSpec, RunConfig, Variable
from .stopping import StopFlag

SUPPORTED_SAMPLERS = ("tpe", "random", "nsga2", "nsgaiii", "cmaes", "qmc", "gp", "botorch")


class MetadataConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    description: str | None = None

    @model_validator(mode="after")
    def validate_strings(self) -> "MetadataConfig":
        if not self.name.strip():
            raise ValueError("metadata.name must be a non-empty string")
        if self.description is not None and not self.description.strip():
            raise ValueError("metadata.description must be a non-empty string when provided")
        return self


class StudyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = "trialflow"
    storage: str | None = None
    sampler: str = "tpe"
    seed: int | None = None
    continue_study: bool = False
    use_constraints: bool = False

    @model_validator(mode="after")
    def validate_study(self) -> "StudyConfig":
        if not self.name.strip():
            raise ValueError("study.name must be a non-empty string")
        if self.storage is not None and not self.storage.strip():
            raise ValueError("study.storage must be a non-empty string when provided")
        self.sampler = self.sampler.lower().strip()
        if self.sampler not in SUPPORTED_SAMPLERS:
            raise ValueError("study.sampler must be one of " + ", ".join(SUPPORTED_SAMPLERS))
        return self


class VariableConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    low: float
    high: float
    integer: bool = False
    step: float | None = None

    @model_validator(mode="after")
    def validate_range(self) -> "VariableConfig":
        if self.step is not None and self.step <= 0:
            raise ValueError("variable step must be positive when provided")
        if self.integer:
            if self.low > self.high:
                raise ValueError("integer variable requires low <= high")
            if self.step is not None and self.step != int(self.step):
                raise ValueError("integer variable step must be a whole number")
        elif self.low >= self.high:
            raise ValueError("float variable requires low < high")
        return self


class EvaluatorConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    module: str
    callable: str

    @model_validator(mode="after")
    def validate_strings(self) -> "EvaluatorConfig":
        if not self.module.strip():
            raise ValueError("evaluator.module must be a non-empty string")
        if not self.callable.strip():
            raise ValueError("evaluator.callable must be a non-empty string")
        return self


class StoppingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_trials: int
    timeout_seconds: float = 0.0

    @model_validator(mode="after")
    def validate_numbers(self) -> "StoppingConfig":
        if self.max_trials <= 0:
            raise ValueError("stopping.max_trials must be positive")
        return self


class RetryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_nan_retries: int = 10

    @model_validator(mode="after")
    def validate_retries(self) -> "RetryConfig":
        if self.max_nan_retries <= 0:
            raise ValueError("retry.max_nan_retries must be positive")
        return self


class TelemetryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    realtime: bool = True


class HumanInTheLoopConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    batch_size: int = 3
    poll_interval_seconds: float = 0.1

    @model_validator(mode="after")
    def validate_fields(self) -> "HumanInTheLoopConfig":
        if self.batch_size <= 0:
            raise ValueError("human_in_the_loop.batch_size must be positive")
        if self.poll_interval_seconds <= 0:
            raise ValueError("human_in_the_loop.poll_interval_seconds must be positive")
        return self


class OptimizationConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    metadata: MetadataConfig
    study: StudyConfig = Field(default_factory=StudyConfig)
    variables: Dict[str, VariableConfig]
    objectives: List[str]
    evaluator: EvaluatorConfig
    stopping: StoppingConfig
    retry: RetryConfig = Field(default_factory=RetryConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    human_in_the_loop: HumanInTheLoopConfig = Field(default_factory=HumanInTheLoopConfig)
    gc_after_trial: Literal["always", "has_artifacts", "never"] = "has_artifacts"
    enqueue: Dict[str, List[float]] | None = None

    @model_validator(mode="after")
    def validate_all(self) -> "OptimizationConfig":
        if not self.variables:
            raise ValueError("variables must define at least one entry")
        for name in self.variables:
            if not name.strip():
                raise ValueError("variables names must be non-empty strings")

        if not self.objectives:
            raise ValueError("objectives must contain at least one name")
        seen: set[str] = set()
        for objective in self.objectives:
            if not objective.strip():
                raise ValueError("objectives entries must be non-empty strings")
            if objective in seen:
                raise ValueError(f"objectives entry '{objective}' is duplicated")
            seen.add(objective)

        if self.enqueue:
            unknown = [name for name in self.enqueue if name not in self.variables]
            if unknown:
                raise ValueError(
                    "enqueue keys must be declared variables: " + ", ".join(sorted(unknown))
                )
            lengths = {len(values) for values in self.enqueue.values()}
            if len(lengths) > 1:
                raise ValueError("enqueue value lists must all have the same length")
            for variable in self.variable_list():
                outside = [
                    value
                    for value in self.enqueue.get(variable.name, [])
                    if not variable.contains(value)
                ]
                if outside:
                    raise ValueError(
                        f"enqueue.{variable.name} values are outside the variable's bounds "
                        f"or step grid: {outside}"
                    )
        return self

    def variable_list(self) -> List[Variable]:
        """Variables in declaration order."""

        return [
            Variable(
                name=name,
                lower_bound=spec.low,
                upper_bound=spec.high,
                is_integer=spec.integer,
                step=spec.step,
            )
            for name, spec in self.variables.items()
        ]

    def objective_spec(self) -> ObjectiveSpec:
        return ObjectiveSpec.of(self.objectives)

    def to_run_config(self, stop_flag: StopFlag | None = None) -> RunConfig:
        hitl = self.human_in_the_loop
        return RunConfig(
            max_trials=self.stopping.max_trials,
            stop_flag=stop_flag if stop_flag is not None else StopFlag(),
            timeout_seconds=self.stopping.timeout_seconds,
            human_in_the_loop_batch_size=hitl.batch_size if hitl.enabled else None,
            gc_policy=GcPolicy(self.gc_after_trial),
            realtime_telemetry=self.telemetry.realtime,
            max_nan_retries=self.retry.max_nan_retries,
            poll_interval_seconds=hitl.poll_interval_seconds,
        )

    def evaluator_settings(self) -> Dict[str, Any]:
        return self.evaluator.model_dump()


__all__ = [
    "EvaluatorConfig",
    "HumanInTheLoopConfig",
    "OptimizationConfig",
    "StudyConfig",
    "SUPPORTED_SAMPLERS",
    "ValidationError",
    "VariableConfig",
]
