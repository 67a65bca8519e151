"""Tests for configuration-driven runs and the background job."""
from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

import optuna

from trialflow.model import EndState
from trialflow.optimization import OptimizationJob, run_optimization

optuna.logging.set_verbosity(optuna.logging.WARNING)


def make_config(**overrides) -> dict:
    config = {
        "metadata": {"name": "quadratic"},
        "study": {"name": "quadratic", "sampler": "random", "seed": 11},
        "variables": {"x": {"low": -10.0, "high": 10.0}},
        "objectives": ["loss"],
        "evaluator": {"module": "trialflow.evaluators.sphere", "callable": "quadratic"},
        "stopping": {"max_trials": 6},
    }
    config.update(overrides)
    return config


class RunOptimizationTests(unittest.TestCase):
    def test_runs_from_mapping(self) -> None:
        outcome = run_optimization(make_config())
        self.assertEqual(outcome.end_state, EndState.ALL_TRIALS_COMPLETED)
        self.assertEqual(outcome.trials_completed, 6)
        self.assertEqual(len(outcome.optimum), 1)
        self.assertAlmostEqual(outcome.best_values[0][0], outcome.optimum[0] ** 2)

    def test_multi_objective_benchmark(self) -> None:
        config = make_config(
            study={"name": "zdt3", "sampler": "nsga2", "seed": 5},
            variables={f"x{i}": {"low": 0.0, "high": 1.0} for i in range(3)},
            objectives=["f1", "f2"],
            evaluator={"module": "trialflow.evaluators.zdt3", "callable": "create_zdt3_evaluator"},
        )
        states = []
        outcome = run_optimization(config, progress_sink=states.append)
        self.assertEqual(outcome.end_state, EndState.ALL_TRIALS_COMPLETED)
        self.assertEqual(len(states), 6)
        for state in states[2:]:
            self.assertGreaterEqual(state.hypervolume_ratio, 0.0)
            self.assertLessEqual(state.hypervolume_ratio, 1.0)

    def test_existing_study_without_continue_never_runs(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            storage = f"sqlite:///{Path(tmp) / 'runs.db'}"
            optuna.create_study(study_name="quadratic", storage=storage)
            fatal = []
            outcome = run_optimization(
                make_config(study={"name": "quadratic", "storage": storage}),
                on_fatal=fatal.append,
            )
            self.assertEqual(outcome.end_state, EndState.CONTINUE_PRECONDITION_FAILED)
            self.assertEqual(outcome.trials_completed, 0)
            self.assertEqual(len(fatal), 1)
            study = optuna.load_study(study_name="quadratic", storage=storage)
            self.assertEqual(len(study.trials), 0)

    def test_continue_with_different_objective_count(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            storage = f"sqlite:///{Path(tmp) / 'runs.db'}"
            optuna.create_study(
                study_name="quadratic", storage=storage, directions=["minimize", "minimize"]
            )
            outcome = run_optimization(
                make_config(study={"name": "quadratic", "storage": storage, "continue_study": True})
            )
            self.assertEqual(outcome.end_state, EndState.DIRECTION_COUNT_MISMATCH)


class OptimizationJobTests(unittest.TestCase):
    def test_job_runs_on_worker_thread(self) -> None:
        job = OptimizationJob(make_config()).start()
        outcome = job.wait(timeout=60)
        self.assertIsNotNone(outcome)
        self.assertFalse(job.running)
        self.assertEqual(outcome.trials_completed, 6)

    def test_stop_request_ends_after_current_trial(self) -> None:
        job = OptimizationJob(make_config(stopping={"max_trials": 1000}))
        job.request_stop()
        outcome = job.start().wait(timeout=60)
        self.assertEqual(outcome.end_state, EndState.STOPPED_BY_USER)
        self.assertEqual(outcome.trials_completed, 1)

    def test_worker_errors_are_reraised(self) -> None:
        job = OptimizationJob(
            make_config(evaluator={"module": "trialflow.evaluators.sphere", "callable": "missing"})
        ).start()
        with self.assertRaises(AttributeError):
            job.wait(timeout=60)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
