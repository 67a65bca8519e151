"""Validation tests for the YAML configuration schema."""
from __future__ import annotations

import unittest

from trialflow.config import OptimizationConfig, ValidationError
from trialflow.model import GcPolicy
from trialflow.stopping import StopFlag


def make_base_config() -> dict:
    return {
        "metadata": {"name": "experiment", "description": "example"},
        "study": {"name": "exp", "sampler": "tpe", "seed": 3},
        "variables": {
            "x": {"low": -1.0, "high": 1.0},
            "n": {"low": 0, "high": 8, "integer": True, "step": 2},
        },
        "objectives": ["loss"],
        "evaluator": {
            "module": "trialflow.evaluators.sphere",
            "callable": "create_sphere_evaluator",
            "shift": 0.5,
        },
        "stopping": {"max_trials": 4},
    }


class OptimizationConfigValidationTests(unittest.TestCase):
    def test_valid_configuration_passes(self) -> None:
        config = OptimizationConfig.model_validate(make_base_config())
        self.assertEqual(config.study.sampler, "tpe")
        self.assertEqual(config.retry.max_nan_retries, 10)
        self.assertEqual(config.gc_after_trial, "has_artifacts")
        self.assertFalse(config.human_in_the_loop.enabled)

    def test_variables_keep_declaration_order(self) -> None:
        config = OptimizationConfig.model_validate(make_base_config())
        variables = config.variable_list()
        self.assertEqual([v.name for v in variables], ["x", "n"])
        self.assertTrue(variables[1].is_integer)
        self.assertEqual(variables[1].integer_step, 2)

    def test_evaluator_extras_are_forwarded(self) -> None:
        config = OptimizationConfig.model_validate(make_base_config())
        self.assertEqual(config.evaluator_settings()["shift"], 0.5)

    def test_run_config_conversion(self) -> None:
        data = make_base_config()
        data["human_in_the_loop"] = {"enabled": True, "batch_size": 4}
        data["stopping"]["timeout_seconds"] = 30
        data["gc_after_trial"] = "always"
        flag = StopFlag()
        run_config = OptimizationConfig.model_validate(data).to_run_config(flag)
        self.assertIs(run_config.stop_flag, flag)
        self.assertEqual(run_config.human_in_the_loop_batch_size, 4)
        self.assertEqual(run_config.timeout_seconds, 30.0)
        self.assertIs(run_config.gc_policy, GcPolicy.ALWAYS)

    def test_disabled_review_has_no_batch_limit(self) -> None:
        run_config = OptimizationConfig.model_validate(make_base_config()).to_run_config()
        self.assertIsNone(run_config.human_in_the_loop_batch_size)

    def test_float_bounds_must_increase(self) -> None:
        data = make_base_config()
        data["variables"]["x"] = {"low": 1.0, "high": 1.0}
        with self.assertRaises(ValidationError):
            OptimizationConfig.model_validate(data)

    def test_integer_range_may_be_a_single_point(self) -> None:
        data = make_base_config()
        data["variables"]["n"] = {"low": 2, "high": 2, "integer": True}
        OptimizationConfig.model_validate(data)

    def test_unknown_sampler_rejected(self) -> None:
        data = make_base_config()
        data["study"]["sampler"] = "annealing"
        with self.assertRaises(ValidationError) as ctx:
            OptimizationConfig.model_validate(data)
        self.assertIn("study.sampler", str(ctx.exception))

    def test_duplicate_objectives_rejected(self) -> None:
        data = make_base_config()
        data["objectives"] = ["loss", "loss"]
        with self.assertRaises(ValidationError):
            OptimizationConfig.model_validate(data)

    def test_enqueue_keys_must_be_variables(self) -> None:
        data = make_base_config()
        data["enqueue"] = {"z": [1.0]}
        with self.assertRaises(ValidationError):
            OptimizationConfig.model_validate(data)

    def test_enqueue_lengths_must_match(self) -> None:
        data = make_base_config()
        data["enqueue"] = {"x": [0.1, 0.2], "n": [2]}
        with self.assertRaises(ValidationError):
            OptimizationConfig.model_validate(data)

    def test_enqueue_values_must_fit_integer_grid(self) -> None:
        data = make_base_config()
        data["enqueue"] = {"x": [0.1], "n": [2.7]}
        with self.assertRaises(ValidationError) as ctx:
            OptimizationConfig.model_validate(data)
        self.assertIn("enqueue.n", str(ctx.exception))
        data["enqueue"] = {"x": [0.1], "n": [3]}
        with self.assertRaises(ValidationError):
            OptimizationConfig.model_validate(data)
        data["enqueue"] = {"x": [0.1], "n": [4]}
        OptimizationConfig.model_validate(data)

    def test_unknown_top_level_key_rejected(self) -> None:
        data = make_base_config()
        data["planner"] = {"enabled": True}
        with self.assertRaises(ValidationError):
            OptimizationConfig.model_validate(data)

    def test_max_trials_must_be_positive(self) -> None:
        data = make_base_config()
        data["stopping"]["max_trials"] = 0
        with self.assertRaises(ValidationError):
            OptimizationConfig.model_validate(data)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
