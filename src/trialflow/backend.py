"""Sampler/study backend interface and its Optuna implementation."""
from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple

import optuna
from optuna.trial import TrialState

from .model import EndState, ObjectiveSpec, TrialflowError, Variable

logger = logging.getLogger(__name__)

CONSTRAINT_ATTR = "constraint"
ARTIFACTS_ATTR = "artifacts"

_CONSTRAINT_SAMPLERS = {"tpe", "nsga2", "nsgaiii", "gp", "botorch"}


class StudyPreconditionError(TrialflowError):
    """Raised when an existing study cannot be used with the current settings."""

    def __init__(self, message: str, end_state: EndState) -> None:
        super().__init__(message)
        self.end_state = end_state


@dataclass(frozen=True)
class BackendTrial:
    """Completed trial as reported by the backend."""

    number: int
    params: Mapping[str, Any]
    values: Tuple[float, ...]


class Candidate(ABC):
    """Handle to an asked-but-not-yet-told trial."""

    @property
    @abstractmethod
    def number(self) -> int:
        ...

    @abstractmethod
    def suggest(self, variable: Variable) -> float:
        """Return a value for ``variable`` honouring its bounds, step and integrality."""

    @abstractmethod
    def set_attribute(self, key: str, value: Any) -> None:
        ...


class StudyBackend(ABC):
    """Narrow ask/tell surface the orchestrator depends on."""

    @abstractmethod
    def ask(self) -> Candidate:
        ...

    @abstractmethod
    def tell(self, candidate: Candidate, values: Sequence[float]) -> None:
        ...

    @abstractmethod
    def discard(self, candidate: Candidate) -> None:
        """Close a candidate that will never be told, without reporting values."""

    @abstractmethod
    def best_trials(self) -> List[BackendTrial]:
        ...

    @abstractmethod
    def completed_values(self) -> List[Tuple[float, ...]]:
        ...

    @abstractmethod
    def running_trial_count(self) -> int:
        ...

    @abstractmethod
    def set_study_attribute(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def set_metric_names(self, names: Sequence[str]) -> None:
        ...

    @abstractmethod
    def enqueue(self, params: Mapping[str, float]) -> None:
        """Pre-seed a point; points the backend already holds are skipped."""

    @abstractmethod
    def best_params(self) -> Dict[str, Any]:
        """Parameters of the best trial of a single-objective study."""


class OptunaCandidate(Candidate):
    def __init__(self, trial: optuna.trial.Trial) -> None:
        self.trial = trial

    @property
    def number(self) -> int:
        return self.trial.number

    def suggest(self, variable: Variable) -> float:
        if variable.is_integer:
            low, high = variable.integer_bounds()
            return self.trial.suggest_int(variable.name, low, high, step=variable.integer_step)
        return self.trial.suggest_float(
            variable.name,
            float(variable.lower_bound),
            float(variable.upper_bound),
            step=None if variable.step is None else float(variable.step),
        )

    def set_attribute(self, key: str, value: Any) -> None:
        self.trial.set_user_attr(key, value)


class OptunaBackend(StudyBackend):
    """:class:`StudyBackend` backed by an ``optuna.study.Study``."""

    def __init__(self, study: optuna.study.Study) -> None:
        self.study = study

    @property
    def objective_count(self) -> int:
        return len(self.study.directions)

    def ask(self) -> OptunaCandidate:
        return OptunaCandidate(self.study.ask())

    def tell(self, candidate: Candidate, values: Sequence[float]) -> None:
        trial = _unwrap(candidate)
        if self.objective_count == 1:
            self.study.tell(trial, float(values[0]))
        else:
            self.study.tell(trial, [float(value) for value in values])

    def discard(self, candidate: Candidate) -> None:
        self.study.tell(_unwrap(candidate), state=TrialState.FAIL)

    def best_trials(self) -> List[BackendTrial]:
        if not self._complete_trials():
            return []
        if self.objective_count == 1:
            trials = [self.study.best_trial]
        else:
            trials = self.study.best_trials
        return [
            BackendTrial(number=t.number, params=dict(t.params), values=tuple(t.values))
            for t in trials
        ]

    def completed_values(self) -> List[Tuple[float, ...]]:
        return [
            tuple(trial.values)
            for trial in self._complete_trials()
            if trial.values and all(math.isfinite(value) for value in trial.values)
        ]

    def running_trial_count(self) -> int:
        return len(self.study.get_trials(deepcopy=False, states=(TrialState.RUNNING,)))

    def set_study_attribute(self, key: str, value: Any) -> None:
        self.study.set_user_attr(key, value)

    def set_metric_names(self, names: Sequence[str]) -> None:
        self.study.set_metric_names(list(names))

    def enqueue(self, params: Mapping[str, float]) -> None:
        self.study.enqueue_trial(dict(params), skip_if_exists=True)

    def best_params(self) -> Dict[str, Any]:
        return dict(self.study.best_params)

    def _complete_trials(self) -> List[optuna.trial.FrozenTrial]:
        return self.study.get_trials(deepcopy=False, states=(TrialState.COMPLETE,))


def _unwrap(candidate: Candidate) -> optuna.trial.Trial:
    if not isinstance(candidate, OptunaCandidate):
        raise TypeError(f"OptunaBackend cannot handle candidate {type(candidate).__name__}")
    return candidate.trial


def constraints_from_attrs(trial: optuna.trial.FrozenTrial) -> Sequence[float]:
    return trial.user_attrs.get(CONSTRAINT_ATTR, [])


def build_sampler(
    sampler_name: str,
    seed: int | None,
    *,
    use_constraints: bool = False,
) -> optuna.samplers.BaseSampler:
    sampler_name = sampler_name.lower()
    constraints_func = None
    if use_constraints:
        if sampler_name in _CONSTRAINT_SAMPLERS:
            constraints_func = constraints_from_attrs
        else:
            logger.warning(
                "Sampler '%s' does not support constraints; optimizing without them.",
                sampler_name,
            )

    if sampler_name == "tpe":
        return optuna.samplers.TPESampler(seed=seed, constraints_func=constraints_func)
    if sampler_name == "random":
        return optuna.samplers.RandomSampler(seed=seed)
    if sampler_name == "nsga2":
        return optuna.samplers.NSGAIISampler(seed=seed, constraints_func=constraints_func)
    if sampler_name == "nsgaiii":
        return optuna.samplers.NSGAIIISampler(seed=seed, constraints_func=constraints_func)
    if sampler_name == "cmaes":
        return optuna.samplers.CmaEsSampler(seed=seed)
    if sampler_name == "qmc":
        return optuna.samplers.QMCSampler(seed=seed)
    if sampler_name == "gp":
        sampler_cls = getattr(optuna.samplers, "GPSampler", None)
        if sampler_cls is None:
            raise ValueError(
                "Optuna installation does not provide GPSampler; upgrade Optuna to use 'gp'."
            )
        if constraints_func is not None:
            return sampler_cls(seed=seed, constraints_func=constraints_func)
        return sampler_cls(seed=seed)
    if sampler_name == "botorch":
        try:
            from optuna_integration import BoTorchSampler  # type: ignore
        except ImportError as exc:  # pragma: no cover - optional dep
            raise ValueError(
                "sampler 'botorch' requires optuna-integration[botorch] to be installed"
            ) from exc
        return BoTorchSampler(seed=seed, constraints_func=constraints_func)
    raise ValueError(f"Unsupported sampler: {sampler_name}")


def check_study_preconditions(
    study_name: str,
    objective_count: int,
    *,
    storage: str | optuna.storages.BaseStorage | None,
    continue_study: bool,
) -> None:
    """Reject reuse of an existing study that does not fit the current run."""

    if storage is None:
        return
    summaries = optuna.get_all_study_summaries(storage, include_best_trial=False)
    existing = {summary.study_name: len(summary.directions) for summary in summaries}
    if study_name not in existing:
        return
    if not continue_study:
        raise StudyPreconditionError(
            f"Study '{study_name}' already exists; enable continue_study to resume it.",
            EndState.CONTINUE_PRECONDITION_FAILED,
        )
    if existing[study_name] != objective_count:
        raise StudyPreconditionError(
            f"Study '{study_name}' has {existing[study_name]} objectives, "
            f"the current run defines {objective_count}.",
            EndState.DIRECTION_COUNT_MISMATCH,
        )


def create_study(
    study_name: str,
    objectives: ObjectiveSpec,
    sampler: optuna.samplers.BaseSampler,
    *,
    storage: str | optuna.storages.BaseStorage | None = None,
    continue_study: bool = False,
) -> OptunaBackend:
    check_study_preconditions(
        study_name,
        len(objectives),
        storage=storage,
        continue_study=continue_study,
    )
    study = optuna.create_study(
        study_name=study_name,
        directions=objectives.directions,
        sampler=sampler,
        storage=storage,
        load_if_exists=continue_study,
    )
    if continue_study:
        logger.info("Continuing study '%s' with %d trials.", study_name, len(study.trials))
    else:
        logger.info("Created study '%s'.", study_name)
    return OptunaBackend(study)


__all__ = [
    "ARTIFACTS_ATTR",
    "BackendTrial",
    "CONSTRAINT_ATTR",
    "Candidate",
    "OptunaBackend",
    "OptunaCandidate",
    "StudyBackend",
    "StudyPreconditionError",
    "build_sampler",
    "check_study_preconditions",
    "create_study",
]
