"""Shifted sphere benchmark, the single-objective smoke test."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence

from .base import BaseEvaluator


@dataclass
class SphereEvaluator(BaseEvaluator):
    """``f(x) = sum((x_i - shift)^2)``; the minimum is 0 at ``x_i = shift``."""

    shift: float = 0.0
    objective_count: int = 1

    def _evaluate_impl(self, parameters: List[float], progress: int) -> Any:
        value = sum((float(x) - self.shift) ** 2 for x in parameters)
        return {"objective_values": [value], "attributes": {"progress": [str(progress)]}}


def quadratic(parameters: Sequence[float], progress: int) -> List[float]:
    """Plain-function evaluator: ``f(x) = x^2`` summed over all dimensions."""

    return [sum(float(x) ** 2 for x in parameters)]


def create_sphere_evaluator(config: Mapping[str, Any]) -> SphereEvaluator:
    """Factory helper used by YAML configs."""

    return SphereEvaluator(shift=float(config.get("shift", 0.0)))
