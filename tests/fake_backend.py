"""In-memory StudyBackend used to observe the orchestrator's ask/tell traffic."""
from __future__ import annotations

import random
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Mapping, Sequence, Tuple

from trialflow.backend import BackendTrial, Candidate, StudyBackend
from trialflow.model import Variable
from trialflow.telemetry import pareto_front


class FakeCandidate(Candidate):
    def __init__(self, number: int, preset: Mapping[str, float] | None, rng: random.Random) -> None:
        self._number = number
        self._preset = dict(preset or {})
        self._rng = rng
        self.params: Dict[str, float] = {}
        self.attributes: Dict[str, Any] = {}

    @property
    def number(self) -> int:
        return self._number

    def suggest(self, variable: Variable) -> float:
        if variable.name in self._preset:
            value = self._preset[variable.name]
        elif variable.is_integer:
            low, high = variable.integer_bounds()
            value = self._rng.randrange(low, high + 1, variable.integer_step)
        else:
            value = self._rng.uniform(variable.lower_bound, variable.upper_bound)
        self.params[variable.name] = value
        return value

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value


class FakeBackend(StudyBackend):
    def __init__(self, objective_count: int = 1, *, seed: int = 0) -> None:
        self.objective_count = objective_count
        self.asked: List[FakeCandidate] = []
        self.told: List[Tuple[FakeCandidate, List[float]]] = []
        self.reviewed: List[FakeCandidate] = []
        self.discarded: List[FakeCandidate] = []
        self.enqueued: List[Dict[str, float]] = []
        self.study_attributes: Dict[str, Any] = {}
        self.metric_names: List[str] = []
        self.on_ask: Callable[[int], None] | None = None
        self.best_params_override: Dict[str, Any] | None = None
        self.tell_error: Exception | None = None
        self._queue: Deque[Dict[str, float]] = deque()
        self._rng = random.Random(seed)

    def ask(self) -> FakeCandidate:
        number = len(self.asked)
        if self.on_ask is not None:
            self.on_ask(number)
        preset = self._queue.popleft() if self._queue else None
        candidate = FakeCandidate(number, preset, self._rng)
        self.asked.append(candidate)
        return candidate

    def tell(self, candidate: Candidate, values: Sequence[float]) -> None:
        if self.tell_error is not None:
            raise self.tell_error
        self.told.append((candidate, list(values)))

    def discard(self, candidate: Candidate) -> None:
        self.discarded.append(candidate)

    def review_all(self) -> None:
        """Play the reviewer: close every outstanding candidate."""

        closed = {id(c) for c in self.reviewed} | {id(c) for c in self.discarded}
        for candidate in self.asked:
            if id(candidate) not in closed:
                self.reviewed.append(candidate)

    def best_trials(self) -> List[BackendTrial]:
        if not self.told:
            return []
        if self.objective_count == 1:
            candidate, values = min(self.told, key=lambda item: item[1][0])
            return [BackendTrial(candidate.number, dict(candidate.params), tuple(values))]
        front = set(pareto_front([values for _, values in self.told]))
        return [
            BackendTrial(candidate.number, dict(candidate.params), tuple(values))
            for candidate, values in self.told
            if tuple(values) in front
        ]

    def completed_values(self) -> List[Tuple[float, ...]]:
        return [tuple(values) for _, values in self.told]

    def running_trial_count(self) -> int:
        closed = len(self.told) + len(self.reviewed) + len(self.discarded)
        return len(self.asked) - closed

    def set_study_attribute(self, key: str, value: Any) -> None:
        self.study_attributes[key] = value

    def set_metric_names(self, names: Sequence[str]) -> None:
        self.metric_names = list(names)

    def enqueue(self, params: Mapping[str, float]) -> None:
        point = dict(params)
        if point in self.enqueued:
            return
        self.enqueued.append(point)
        self._queue.append(point)

    def best_params(self) -> Dict[str, Any]:
        if self.best_params_override is not None:
            return dict(self.best_params_override)
        return dict(self.best_trials()[0].params)
