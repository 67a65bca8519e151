"""Continuous bi-objective benchmark evaluator."""
from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Any, List, Mapping

from .base import BaseEvaluator


@dataclass
class ZDT3Evaluator(BaseEvaluator):
    """Deterministic implementation of the classic ZDT3 benchmark.

    Decision variables are expected in ``[0, 1]``. ``noise_std`` adds Gaussian
    noise seeded from the parameter vector so repeated points stay reproducible.
    """

    noise_std: float = 0.0
    seed: int | None = None
    objective_count: int = 2

    def _evaluate_impl(self, parameters: List[float], progress: int) -> Any:
        vector = [float(value) for value in parameters]
        if len(vector) < 2:
            raise ValueError("ZDT3 requires at least two decision variables")

        f1 = vector[0]
        tail = vector[1:]
        g = 1.0 + 9.0 * sum(tail) / len(tail)
        ratio = min(max(f1 / g, 0.0), 1.0)
        f2 = g * (1.0 - math.sqrt(ratio) - ratio * math.sin(10.0 * math.pi * f1))

        if self.noise_std > 0:
            rng = random.Random(self._seed(vector))
            f1 += rng.gauss(0.0, self.noise_std)
            f2 += rng.gauss(0.0, self.noise_std)

        return {
            "objective_values": [f1, f2],
            "attributes": {"g": [repr(g)]},
        }

    def _seed(self, vector: List[float]) -> int:
        combined = hash(tuple(vector))
        if self.seed is not None:
            combined ^= int(self.seed)
        return combined & 0xFFFFFFFF


def create_zdt3_evaluator(config: Mapping[str, Any]) -> ZDT3Evaluator:
    """Factory helper used by YAML configs."""

    seed = config.get("seed")
    return ZDT3Evaluator(
        noise_std=float(config.get("noise_std", 0.0)),
        seed=int(seed) if seed is not None else None,
    )
