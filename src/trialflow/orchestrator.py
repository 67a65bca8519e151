"""Ask -> evaluate -> tell loop driving one optimization run."""
from __future__ import annotations

import gc
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from importlib import metadata
from typing import Any, Callable, List, Mapping, Sequence, Tuple

from .backend import ARTIFACTS_ATTR, CONSTRAINT_ATTR, StudyBackend
from .evaluation import EvaluationAbortedError, EvaluationResult, Evaluator, Proposal, RetryingEvaluator
from .gate import ConcurrencyGate
from .model import (
    EndState,
    ObjectiveSpec,
    ProgressState,
    RunConfig,
    TrialflowError,
    TrialRecord,
    Variable,
)
from .stopping import StopPolicy
from .telemetry import ProgressTelemetry

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressState], None]


class OrchestratorState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class OptimumExtractionError(TrialflowError):
    """Raised when the backend's best parameters do not cover every variable."""


@dataclass
class OptimizationOutcome:
    """Container for summarising the optimization run."""

    end_state: EndState
    trials_completed: int
    optimum: List[float] | None = None
    best_values: List[Tuple[float, ...]] = field(default_factory=list)
    last_trial: TrialRecord | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.end_state in {
            EndState.ALL_TRIALS_COMPLETED,
            EndState.TIMEOUT,
            EndState.STOPPED_BY_USER,
        }


def _package_version() -> str:
    try:
        return metadata.version("trialflow")
    except metadata.PackageNotFoundError:
        return "0+unknown"


class TrialOrchestrator:
    """Run trials sequentially until the stop policy or a fatal error ends the run.

    Each cycle asks the backend for a candidate, evaluates it through
    :class:`RetryingEvaluator`, reports a :class:`ProgressState` to the progress
    sink, tells the backend the outcome (deferred to the reviewer in
    human-in-the-loop mode), optionally reclaims resources and finally consults
    the :class:`StopPolicy`. An orchestrator runs once.
    """

    def __init__(
        self,
        backend: StudyBackend,
        variables: Sequence[Variable],
        objectives: ObjectiveSpec,
        evaluator: Evaluator,
        run_config: RunConfig,
        *,
        enqueue: Mapping[str, Sequence[float]] | None = None,
        progress_sink: ProgressSink | None = None,
        reclaim: Callable[[], Any] = gc.collect,
        on_fatal: Callable[[str], None] | None = None,
        stop_policy: StopPolicy | None = None,
        telemetry: ProgressTelemetry | None = None,
        gate: ConcurrencyGate | None = None,
    ) -> None:
        if not variables:
            raise ValueError("at least one variable is required")
        names = [variable.name for variable in variables]
        if len(set(names)) != len(names):
            raise ValueError("variable names must be unique")

        self._backend = backend
        self._variables = tuple(variables)
        self._objectives = objectives
        self._config = run_config
        self._enqueue = self._validate_enqueue(enqueue)
        self._progress_sink = progress_sink
        self._reclaim = reclaim
        self._on_fatal = on_fatal
        self._stop_policy = stop_policy or StopPolicy()
        self._telemetry = telemetry or ProgressTelemetry(
            max_trials=run_config.max_trials,
            timeout_seconds=run_config.timeout_seconds,
        )
        self._gate = gate or ConcurrencyGate(
            run_config.human_in_the_loop_batch_size,
            poll_interval=run_config.poll_interval_seconds,
        )
        self._evaluator = RetryingEvaluator(
            evaluator,
            propose=self._propose,
            discard=backend.discard,
            objective_count=len(objectives),
            max_nan_retries=run_config.max_nan_retries,
        )
        self._state = OrchestratorState.IDLE
        self._end_state: EndState | None = None

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def end_state(self) -> EndState | None:
        return self._end_state

    @property
    def variables(self) -> Tuple[Variable, ...]:
        return self._variables

    def run(self) -> OptimizationOutcome:
        if self._state is not OrchestratorState.IDLE:
            raise RuntimeError("TrialOrchestrator.run() may only be called once")
        self._state = OrchestratorState.RUNNING
        try:
            return self._run_loop()
        except BaseException:
            if self._end_state is None:
                self._state = OrchestratorState.ABORTED
                self._end_state = EndState.ERROR
                logger.error("Optimization aborted by an unexpected error.")
            raise
        finally:
            # A request that arrived while the last trial ran must not stop the next run.
            self._config.stop_flag.clear()

    def _run_loop(self) -> OptimizationOutcome:
        self._record_study_attributes()
        self._enqueue_seed_points()

        start = self._stop_policy.now()
        trial_number = 0
        last_trial: TrialRecord | None = None
        while True:
            if self._gate.enabled and not self._gate.wait_for_slot(
                self._backend.running_trial_count,
                should_abort=lambda: self._stop_pending(start),
            ):
                end_state = self._check_stop(trial_number, start)
                if end_state is not None:
                    return self._complete(end_state, trial_number, last_trial)
                continue

            try:
                last_trial = self._run_cycle(trial_number, start)
            except EvaluationAbortedError as exc:
                return self._abort(exc, trial_number, last_trial)
            trial_number += 1

            end_state = self._check_stop(trial_number, start)
            if end_state is not None:
                return self._complete(end_state, trial_number, last_trial)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------
    def _run_cycle(self, trial_number: int, start: float) -> TrialRecord:
        started_at = datetime.now(timezone.utc)
        progress = trial_number * 100 // self._config.max_trials
        candidate, parameters = self._propose()
        result = self._evaluator.evaluate(candidate, parameters, trial_number, progress)

        state = self._telemetry.compute(
            self._backend,
            trial_number,
            len(self._objectives),
            self._config.realtime_telemetry,
            parameters=result.parameters,
            elapsed_seconds=self._stop_policy.elapsed(start),
        )
        if self._progress_sink is not None:
            self._progress_sink(state)

        self._attach_attributes(result)
        try:
            if not self._config.human_in_the_loop:
                self._backend.tell(result.candidate, result.objective_values)
                logger.debug(
                    "Trial %d told: params=%s values=%s",
                    trial_number,
                    result.parameters,
                    result.objective_values,
                )
        except Exception as exc:
            raise ValueError(str(exc)) from exc
        finally:
            if self._config.gc_policy.should_reclaim(result.has_artifacts):
                self._reclaim()

        return TrialRecord(
            index=trial_number,
            parameters=list(result.parameters),
            objective_values=list(result.objective_values),
            attributes=dict(result.attributes),
            artifacts=list(result.artifacts),
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )

    def _propose(self) -> Proposal:
        candidate = self._backend.ask()
        parameters = [candidate.suggest(variable) for variable in self._variables]
        return candidate, parameters

    def _attach_attributes(self, result: EvaluationResult) -> None:
        candidate = result.candidate
        for key, values in result.attributes.items():
            if key == CONSTRAINT_ATTR:
                candidate.set_attribute(key, [float(value) for value in values])
            else:
                candidate.set_attribute(key, [str(value) for value in values])

        if result.has_artifacts:
            candidate.set_attribute(ARTIFACTS_ATTR, [str(artifact) for artifact in result.artifacts])

        if self._config.human_in_the_loop:
            # The reviewer tells the backend later; keep the measured values on the trial.
            for name, value in zip(self._objectives.names, result.objective_values):
                candidate.set_attribute(f"result_{name}", float(value))

    # ------------------------------------------------------------------
    # Stop handling
    # ------------------------------------------------------------------
    def _check_stop(self, trial_number: int, start: float) -> EndState | None:
        return self._stop_policy.should_stop(
            trial_number,
            self._config.max_trials,
            start,
            self._config.timeout_seconds,
            self._config.stop_flag,
        )

    def _stop_pending(self, start: float) -> bool:
        if self._config.stop_flag.is_set():
            return True
        return (
            self._config.has_timeout
            and self._stop_policy.elapsed(start) >= self._config.timeout_seconds
        )

    def _complete(
        self,
        end_state: EndState,
        trials_completed: int,
        last_trial: TrialRecord | None,
    ) -> OptimizationOutcome:
        self._state = OrchestratorState.COMPLETED
        self._end_state = end_state
        logger.info(
            "Optimization finished: %s after %d trials.", end_state.value, trials_completed
        )
        best_trials = self._backend.best_trials()
        return OptimizationOutcome(
            end_state=end_state,
            trials_completed=trials_completed,
            optimum=self._extract_optimum(best_trials, last_trial),
            best_values=[tuple(trial.values) for trial in best_trials],
            last_trial=last_trial,
        )

    def _abort(
        self,
        exc: EvaluationAbortedError,
        trials_completed: int,
        last_trial: TrialRecord | None,
    ) -> OptimizationOutcome:
        self._state = OrchestratorState.ABORTED
        self._end_state = EndState.ERROR
        message = str(exc)
        logger.error("Optimization aborted after %d trials: %s", trials_completed, message)
        if self._on_fatal is not None:
            self._on_fatal(message)
        return OptimizationOutcome(
            end_state=EndState.ERROR,
            trials_completed=trials_completed,
            last_trial=last_trial,
            error=message,
        )

    def _extract_optimum(
        self,
        best_trials: Sequence[Any],
        last_trial: TrialRecord | None,
    ) -> List[float] | None:
        if len(self._objectives) > 1:
            return list(last_trial.parameters) if last_trial is not None else None
        if not best_trials:
            return None

        best_params = self._backend.best_params()
        missing = [variable.name for variable in self._variables if variable.name not in best_params]
        if missing:
            raise OptimumExtractionError(
                "Best trial is missing parameters for variables: " + ", ".join(missing)
            )
        return [float(best_params[variable.name]) for variable in self._variables]

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    def _record_study_attributes(self) -> None:
        self._backend.set_study_attribute(
            "variable_names", ",".join(variable.name for variable in self._variables)
        )
        self._backend.set_metric_names(self._objectives.names)
        self._backend.set_study_attribute("trialflow_version", _package_version())

    def _validate_enqueue(
        self,
        enqueue: Mapping[str, Sequence[float]] | None,
    ) -> dict[str, List[float]]:
        if not enqueue:
            return {}
        known = {variable.name for variable in self._variables}
        unknown = [name for name in enqueue if name not in known]
        if unknown:
            raise ValueError("enqueue refers to unknown variables: " + ", ".join(unknown))
        lengths = {len(values) for values in enqueue.values()}
        if len(lengths) > 1:
            raise ValueError("enqueue value lists must all have the same length")
        by_name = {variable.name: variable for variable in self._variables}
        for name, values in enqueue.items():
            outside = [value for value in values if not by_name[name].contains(value)]
            if outside:
                raise ValueError(
                    f"enqueue values for '{name}' are outside its bounds or step grid: {outside}"
                )
        return {name: list(values) for name, values in enqueue.items()}

    def _enqueue_seed_points(self) -> None:
        if not self._enqueue:
            return
        integer_names = {v.name for v in self._variables if v.is_integer}
        count = len(next(iter(self._enqueue.values())))
        for idx in range(count):
            point = {
                name: int(values[idx]) if name in integer_names else float(values[idx])
                for name, values in self._enqueue.items()
            }
            self._backend.enqueue(point)
        logger.info("Enqueued %d seed points.", count)


__all__ = [
    "OptimizationOutcome",
    "OptimumExtractionError",
    "OrchestratorState",
    "ProgressSink",
    "TrialOrchestrator",
]
