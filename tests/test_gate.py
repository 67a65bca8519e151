"""Unit tests for the human-in-the-loop concurrency gate."""
from __future__ import annotations

import unittest

from trialflow.gate import ConcurrencyGate


class ConcurrencyGateTests(unittest.TestCase):
    def test_admission_rule(self) -> None:
        self.assertTrue(ConcurrencyGate.may_start_next_trial(10, None))
        self.assertTrue(ConcurrencyGate.may_start_next_trial(2, 3))
        self.assertFalse(ConcurrencyGate.may_start_next_trial(3, 3))

    def test_disabled_gate_never_polls(self) -> None:
        gate = ConcurrencyGate(None)

        def fail() -> int:
            raise AssertionError("outstanding count must not be read")

        self.assertFalse(gate.enabled)
        self.assertTrue(gate.wait_for_slot(fail))

    def test_waits_until_slot_frees(self) -> None:
        counts = iter([3, 3, 2])
        sleeps: list[float] = []
        gate = ConcurrencyGate(3, poll_interval=0.5, sleep=sleeps.append)
        self.assertTrue(gate.wait_for_slot(lambda: next(counts)))
        self.assertEqual(sleeps, [0.5, 0.5])

    def test_abort_releases_waiter(self) -> None:
        sleeps: list[float] = []
        gate = ConcurrencyGate(1, sleep=sleeps.append)
        aborted = iter([False, False, True])
        self.assertFalse(gate.wait_for_slot(lambda: 1, should_abort=lambda: next(aborted)))
        self.assertEqual(len(sleeps), 2)

    def test_batch_limit_must_be_positive(self) -> None:
        with self.assertRaises(ValueError):
            ConcurrencyGate(0)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
