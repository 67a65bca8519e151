"""Two-dimensional Branin benchmark as a plain-function evaluator."""
from __future__ import annotations

import math
from typing import Any, Dict, Sequence


def branin_objective(parameters: Sequence[float], progress: int) -> Dict[str, Any]:
    """Evaluate Branin at ``(x1, x2)``; global minima are about 0.397887."""

    if len(parameters) != 2:
        raise ValueError("Branin requires exactly two parameters (x1, x2)")
    x1, x2 = (float(value) for value in parameters)

    # f(x1, x2) = a (x2 - b x1^2 + c x1 - r)^2 + s(1 - t) cos(x1) + s
    a = 1.0
    b = 5.1 / (4.0 * math.pi**2)
    c = 5.0 / math.pi
    r = 6.0
    s = 10.0
    t = 1.0 / (8.0 * math.pi)

    y = a * (x2 - b * x1**2 + c * x1 - r) ** 2 + s * (1.0 - t) * math.cos(x1) + s
    return {"objective_values": [float(y)]}
