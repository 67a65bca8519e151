"""Unit tests for the runtime data model."""
from __future__ import annotations

import unittest

from trialflow.model import GcPolicy, ObjectiveSpec, RunConfig, Variable
from trialflow.stopping import StopFlag


class VariableTests(unittest.TestCase):
    def test_float_variable_requires_increasing_bounds(self) -> None:
        with self.assertRaises(ValueError):
            Variable("x", 1.0, 1.0)

    def test_integer_bounds_snap_to_step_multiples(self) -> None:
        variable = Variable("n", -5, 7, is_integer=True, step=2)
        self.assertEqual(variable.integer_bounds(), (-4, 6))
        self.assertEqual(variable.integer_step, 2)

    def test_integer_variable_rejects_fractional_step(self) -> None:
        with self.assertRaises(ValueError):
            Variable("n", 0, 10, is_integer=True, step=1.5)

    def test_integer_variable_without_step_multiple_in_range(self) -> None:
        with self.assertRaises(ValueError):
            Variable("n", 1, 3, is_integer=True, step=5)

    def test_contains_honours_integrality_and_step(self) -> None:
        variable = Variable("n", 0, 10, is_integer=True, step=2)
        self.assertTrue(variable.contains(4))
        self.assertFalse(variable.contains(5))
        self.assertFalse(variable.contains(12))
        self.assertTrue(Variable("x", -1.0, 1.0).contains(0.25))

    def test_non_positive_step_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            Variable("x", 0.0, 1.0, step=0.0)


class ObjectiveSpecTests(unittest.TestCase):
    def test_all_objectives_are_minimized(self) -> None:
        spec = ObjectiveSpec.of(["f1", "f2"])
        self.assertEqual(len(spec), 2)
        self.assertEqual(spec.directions, ["minimize", "minimize"])

    def test_duplicate_names_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            ObjectiveSpec.of(["loss", "loss"])

    def test_empty_spec_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            ObjectiveSpec.of([])


class GcPolicyTests(unittest.TestCase):
    def test_policy_matrix(self) -> None:
        self.assertTrue(GcPolicy.ALWAYS.should_reclaim(False))
        self.assertTrue(GcPolicy.HAS_ARTIFACTS.should_reclaim(True))
        self.assertFalse(GcPolicy.HAS_ARTIFACTS.should_reclaim(False))
        self.assertFalse(GcPolicy.NEVER.should_reclaim(True))


class RunConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = RunConfig(max_trials=3, stop_flag=StopFlag())
        self.assertFalse(config.has_timeout)
        self.assertFalse(config.human_in_the_loop)
        self.assertEqual(config.max_nan_retries, 10)
        self.assertIs(config.gc_policy, GcPolicy.HAS_ARTIFACTS)

    def test_max_trials_must_be_positive(self) -> None:
        with self.assertRaises(ValueError):
            RunConfig(max_trials=0, stop_flag=StopFlag())

    def test_batch_size_enables_human_in_the_loop(self) -> None:
        config = RunConfig(max_trials=3, stop_flag=StopFlag(), human_in_the_loop_batch_size=2)
        self.assertTrue(config.human_in_the_loop)
        with self.assertRaises(ValueError):
            RunConfig(max_trials=3, stop_flag=StopFlag(), human_in_the_loop_batch_size=0)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
