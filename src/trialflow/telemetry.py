"""Live progress telemetry: best-so-far frontier, hypervolume ratio and ETA."""
from __future__ import annotations

import math
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, List, Sequence, Tuple

import numpy as np

from .model import ProgressState

if TYPE_CHECKING:
    from .backend import StudyBackend

REFERENCE_MARGIN = 0.1


def dominates(candidate: Sequence[float], other: Sequence[float]) -> bool:
    if len(candidate) != len(other):
        return False
    not_worse = all(c <= o for c, o in zip(candidate, other))
    strictly_better = any(c < o for c, o in zip(candidate, other))
    return not_worse and strictly_better


def pareto_front(points: Sequence[Sequence[float]]) -> List[Tuple[float, ...]]:
    """Return the non-dominated subset of ``points`` (all objectives minimized)."""

    if not points:
        return []
    unique: List[Tuple[float, ...]] = []
    for point in points:
        key = tuple(float(value) for value in point)
        if key not in unique:
            unique.append(key)
    front: List[Tuple[float, ...]] = []
    for idx, candidate in enumerate(unique):
        dominated = False
        for jdx, other in enumerate(unique):
            if idx == jdx:
                continue
            if dominates(other, candidate):
                dominated = True
                break
        if not dominated:
            front.append(candidate)
    return front


def _hypervolume_2d(front: np.ndarray) -> float:
    # Front is normalized to the unit square with reference point (1, 1).
    ordered = front[np.argsort(front[:, 0])]
    volume = 0.0
    previous_y = 1.0
    for x, y in ordered:
        if y >= previous_y:
            continue
        volume += (1.0 - x) * (previous_y - y)
        previous_y = y
    return volume


def _approximate_hypervolume(front: np.ndarray, *, samples: int, seed: int | None) -> float:
    rng = np.random.default_rng(seed)
    dims = front.shape[1]
    dominated = 0
    # Chunked to keep the (samples, points, dims) comparison bounded in memory.
    chunk = 1024
    remaining = samples
    while remaining > 0:
        size = min(chunk, remaining)
        batch = rng.uniform(0.0, 1.0, size=(size, dims))
        covered = np.all(batch[:, None, :] >= front[None, :, :], axis=2).any(axis=1)
        dominated += int(covered.sum())
        remaining -= size
    return dominated / samples


def hypervolume_ratio(
    front: Sequence[Sequence[float]],
    all_points: Sequence[Sequence[float]],
    *,
    samples: int = 4096,
    seed: int | None = 0,
) -> float:
    """Fraction of the ideal/nadir box dominated by ``front``.

    The box spans the per-objective minimum over ``all_points`` up to the maximum
    widened by ``REFERENCE_MARGIN``, so points on the nadir edge still count.
    Objectives with no spread are dropped; with fewer than two objectives left
    the frontier is a single best point and the ratio is 1. Two objectives are
    computed exactly, more are estimated by uniform sampling.
    """

    points = np.asarray(
        [point for point in all_points if all(math.isfinite(v) for v in point)],
        dtype=float,
    )
    if points.size == 0:
        return 0.0
    front_arr = np.asarray(
        [point for point in front if all(math.isfinite(v) for v in point)],
        dtype=float,
    )
    if front_arr.size == 0:
        front_arr = np.asarray(pareto_front(points.tolist()), dtype=float)

    ideal = points.min(axis=0)
    nadir = points.max(axis=0)
    span = nadir - ideal
    keep = ~np.isclose(span, 0.0, rtol=1e-9, atol=1e-12)
    if int(keep.sum()) < 2:
        return 1.0

    normalized = (front_arr[:, keep] - ideal[keep]) / (span[keep] * (1.0 + REFERENCE_MARGIN))
    normalized = np.clip(normalized, 0.0, 1.0)
    projected = np.asarray(pareto_front(normalized.tolist()), dtype=float)

    if projected.shape[1] == 2:
        ratio = _hypervolume_2d(projected)
    else:
        ratio = _approximate_hypervolume(projected, samples=samples, seed=seed)
    return float(min(1.0, max(0.0, ratio)))


def estimate_time_remaining(
    *,
    elapsed_seconds: float,
    trial_number: int,
    max_trials: int,
    timeout_seconds: float,
) -> timedelta:
    if timeout_seconds <= 0:
        seconds = elapsed_seconds * (max_trials - trial_number) / (trial_number + 1)
    else:
        seconds = timeout_seconds - elapsed_seconds
    return timedelta(seconds=max(0.0, seconds))


class ProgressTelemetry:
    """Build a :class:`ProgressState` from the backend's trial history."""

    def __init__(
        self,
        *,
        max_trials: int,
        timeout_seconds: float = 0.0,
        hv_samples: int = 4096,
        seed: int | None = 0,
    ) -> None:
        self._max_trials = max_trials
        self._timeout_seconds = timeout_seconds
        self._hv_samples = hv_samples
        self._seed = seed

    def compute(
        self,
        backend: "StudyBackend",
        trial_number: int,
        objective_count: int,
        enabled: bool,
        *,
        parameters: Sequence[float],
        elapsed_seconds: float,
    ) -> ProgressState:
        best_values: List[Tuple[float, ...]] | None = None
        ratio = 0.0
        if enabled:
            best_values = [tuple(trial.values) for trial in backend.best_trials()]
            ratio = self.hypervolume_ratio(backend, trial_number, objective_count, best_values)

        return ProgressState(
            trial_number=trial_number,
            objective_count=objective_count,
            best_values=best_values,
            current_parameters=[Decimal(str(value)) for value in parameters],
            hypervolume_ratio=ratio,
            estimated_time_remaining=estimate_time_remaining(
                elapsed_seconds=elapsed_seconds,
                trial_number=trial_number,
                max_trials=self._max_trials,
                timeout_seconds=self._timeout_seconds,
            ),
        )

    def hypervolume_ratio(
        self,
        backend: "StudyBackend",
        trial_number: int,
        objective_count: int,
        best_values: Sequence[Sequence[float]],
    ) -> float:
        if trial_number == 0:
            return 0.0
        if trial_number == 1 or objective_count == 1:
            return 1.0
        return hypervolume_ratio(
            best_values,
            backend.completed_values(),
            samples=self._hv_samples,
            seed=self._seed,
        )


__all__ = [
    "REFERENCE_MARGIN",
    "ProgressTelemetry",
    "dominates",
    "estimate_time_remaining",
    "hypervolume_ratio",
    "pareto_front",
]
