"""Base interfaces and utilities for evaluator plugins."""
from __future__ import annotations

import math
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class EvaluatorOutput(BaseModel):
    """Validation schema applied to evaluator outputs.

    ``objective_values`` may contain NaN: a NaN objective marks the candidate as
    invalid and is handled by the retry policy, not rejected here.
    """

    objective_values: List[float]
    attributes: Dict[str, List[str]] = Field(default_factory=dict)
    artifacts: List[Any] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    @field_validator("attributes", mode="before")
    @classmethod
    def _stringify_attributes(cls, value: Any) -> Any:
        if not isinstance(value, Mapping):
            return value
        normalized: Dict[str, List[str]] = {}
        for key, entries in value.items():
            if isinstance(entries, (str, bytes)) or not isinstance(entries, Sequence):
                entries = [entries]
            normalized[str(key)] = [str(entry) for entry in entries]
        return normalized

    @property
    def has_nan(self) -> bool:
        return any(math.isnan(value) for value in self.objective_values)


def coerce_output(raw: Any, *, objective_count: int) -> EvaluatorOutput:
    """Normalise an evaluator return value into :class:`EvaluatorOutput`.

    Accepted shapes are an ``EvaluatorOutput``, a mapping with the same keys, a
    bare sequence of objective values, or a single number for one objective.
    """

    if isinstance(raw, EvaluatorOutput):
        output = raw
    elif isinstance(raw, Mapping):
        try:
            output = EvaluatorOutput.model_validate(dict(raw))
        except ValidationError as exc:
            raise ValueError(f"Evaluator payload failed validation: {exc}") from exc
    elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
        output = EvaluatorOutput(objective_values=[float(raw)])
    elif isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        try:
            output = EvaluatorOutput(objective_values=[float(value) for value in raw])
        except (TypeError, ValueError) as exc:
            raise ValueError("Evaluator objective values must be numeric") from exc
    else:
        raise TypeError(
            f"Evaluator returned unsupported payload type {type(raw).__name__}"
        )

    if len(output.objective_values) != objective_count:
        raise ValueError(
            f"Evaluator returned {len(output.objective_values)} objective values, "
            f"expected {objective_count}"
        )
    return output


class BaseEvaluator(ABC):
    """Common interface for evaluator implementations.

    Evaluators receive the parameter vector in declared variable order and the
    run progress in percent. Subclasses implement :meth:`_evaluate_impl`; the
    base class validates the payload and records the wall-clock time spent under
    the ``elapsed_seconds`` attribute.
    """

    #: Number of objectives the evaluator reports.
    objective_count: int = 1

    def __call__(self, parameters: Sequence[float], progress: int) -> EvaluatorOutput:
        start = time.perf_counter()
        raw = self._evaluate_impl(list(parameters), progress)
        elapsed = time.perf_counter() - start
        output = coerce_output(raw, objective_count=self.objective_count)
        attributes = dict(output.attributes)
        attributes.setdefault("elapsed_seconds", [f"{elapsed:.6f}"])
        return output.model_copy(update={"attributes": attributes})

    @abstractmethod
    def _evaluate_impl(self, parameters: List[float], progress: int) -> Any:
        """Return the raw evaluator payload prior to normalization."""


__all__ = ["BaseEvaluator", "EvaluatorOutput", "coerce_output"]
