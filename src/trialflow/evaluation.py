"""Evaluator invocation with the bounded NaN retry policy."""
from __future__ import annotations

import importlib
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

from .backend import Candidate
from .evaluators.base import EvaluatorOutput, coerce_output
from .model import TrialflowError

logger = logging.getLogger(__name__)

Evaluator = Callable[[List[float], int], Any]
"""Raw objective function: ``(parameters, progress_percent) -> payload``."""

Proposal = Tuple[Candidate, List[float]]

DEFAULT_MAX_NAN_RETRIES = 10


class EvaluationAbortedError(TrialflowError):
    """Fatal evaluator failure; the run must end with ``EndState.ERROR``."""

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


@dataclass
class EvaluationResult:
    """Successful evaluation of the candidate that will be told to the backend."""

    candidate: Candidate
    parameters: List[float]
    objective_values: List[float]
    attributes: Dict[str, List[str]] = field(default_factory=dict)
    artifacts: List[Any] = field(default_factory=list)
    attempts: int = 1

    @property
    def has_artifacts(self) -> bool:
        return len(self.artifacts) > 0


class RetryingEvaluator:
    """Call the evaluator, replacing degenerate candidates with fresh ones.

    A NaN objective means the point itself is invalid, so the candidate is
    discarded and a new one is asked from the backend rather than re-evaluating
    the same parameters. After ``max_nan_retries`` consecutive NaN results the
    run is aborted with :class:`EvaluationAbortedError`; an exception from the
    evaluator aborts immediately.
    """

    def __init__(
        self,
        evaluator: Evaluator,
        *,
        propose: Callable[[], Proposal],
        discard: Callable[[Candidate], None],
        objective_count: int,
        max_nan_retries: int = DEFAULT_MAX_NAN_RETRIES,
    ) -> None:
        if max_nan_retries <= 0:
            raise ValueError("max_nan_retries must be positive")
        self._evaluator = evaluator
        self._propose = propose
        self._discard = discard
        self._objective_count = objective_count
        self._max_nan_retries = max_nan_retries

    @property
    def max_nan_retries(self) -> int:
        return self._max_nan_retries

    def evaluate(
        self,
        candidate: Candidate,
        parameters: Sequence[float],
        trial_index: int,
        progress: int,
    ) -> EvaluationResult:
        params = list(parameters)
        nan_count = 0
        while True:
            output = self._call(candidate, params, progress, attempts=nan_count + 1)
            if not output.has_nan:
                return EvaluationResult(
                    candidate=candidate,
                    parameters=params,
                    objective_values=list(output.objective_values),
                    attributes=dict(output.attributes),
                    artifacts=list(output.artifacts),
                    attempts=nan_count + 1,
                )

            nan_count += 1
            logger.warning(
                "Trial %d: objective returned NaN for %s (%d/%d), asking for a new candidate.",
                trial_index,
                params,
                nan_count,
                self._max_nan_retries,
            )
            self._discard(candidate)
            candidate, params = self._propose()
            if nan_count >= self._max_nan_retries:
                self._discard(candidate)
                raise EvaluationAbortedError(
                    f"The objective function returned NaN {nan_count} times in a row. "
                    "The optimization was terminated; please check the objective function.",
                    attempts=nan_count,
                )

    def _call(
        self,
        candidate: Candidate,
        params: List[float],
        progress: int,
        *,
        attempts: int,
    ) -> EvaluatorOutput:
        try:
            raw = self._evaluator(list(params), progress)
            return coerce_output(raw, objective_count=self._objective_count)
        except Exception as exc:  # noqa: BLE001 - any evaluator failure is fatal
            self._discard(candidate)
            raise EvaluationAbortedError(
                f"Evaluator raised {exc.__class__.__name__}: {exc}",
                attempts=attempts,
            ) from exc


def load_evaluator(config: Mapping[str, Any]) -> Evaluator:
    """Resolve ``module``/``callable`` into an evaluator.

    Classes are instantiated without arguments. Functions with no required
    positional argument are called to build the evaluator, functions with one are
    treated as factories taking the evaluator config, and anything else is used
    as the evaluator directly.
    """

    module = importlib.import_module(config["module"])
    target = getattr(module, config["callable"])
    if not callable(target):
        raise TypeError("Evaluator target must be a function, factory, or evaluator instance.")

    evaluator_obj: Any = target
    if inspect.isclass(target):
        evaluator_obj = target()
    elif inspect.isfunction(target):
        required = [
            param
            for param in inspect.signature(target).parameters.values()
            if param.default is inspect.Parameter.empty
            and param.kind
            in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        ]
        if not required:
            evaluator_obj = target()
        elif len(required) == 1:
            evaluator_obj = target(dict(config))

    if not callable(evaluator_obj):
        raise TypeError("Evaluator factory did not return a callable.")
    return evaluator_obj


__all__ = [
    "DEFAULT_MAX_NAN_RETRIES",
    "EvaluationAbortedError",
    "EvaluationResult",
    "Evaluator",
    "RetryingEvaluator",
    "load_evaluator",
]
