"""Evaluator package exports."""

from .base import BaseEvaluator, EvaluatorOutput, coerce_output
from .branin import branin_objective
from .sphere import SphereEvaluator, create_sphere_evaluator, quadratic
from .zdt3 import ZDT3Evaluator, create_zdt3_evaluator

__all__ = [
    "BaseEvaluator",
    "EvaluatorOutput",
    "coerce_output",
    "branin_objective",
    "SphereEvaluator",
    "create_sphere_evaluator",
    "quadratic",
    "ZDT3Evaluator",
    "create_zdt3_evaluator",
]
