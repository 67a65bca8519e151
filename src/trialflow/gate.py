"""Cap on trials awaiting human review in human-in-the-loop mode."""
from __future__ import annotations

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class ConcurrencyGate:
    """Hold the loop while ``batch_limit`` trials are waiting on a reviewer.

    The wait is a cooperative poll: reviewers act at human pace, so a short sleep
    between reads of the outstanding count is enough. ``batch_limit=None``
    disables the gate entirely.
    """

    def __init__(
        self,
        batch_limit: int | None,
        *,
        poll_interval: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_limit is not None and batch_limit <= 0:
            raise ValueError("batch_limit must be positive when provided")
        self.batch_limit = batch_limit
        self._poll_interval = max(0.0, float(poll_interval))
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return self.batch_limit is not None

    @staticmethod
    def may_start_next_trial(outstanding_count: int, batch_limit: int | None) -> bool:
        if batch_limit is None:
            return True
        return outstanding_count < batch_limit

    def wait_for_slot(
        self,
        outstanding: Callable[[], int],
        *,
        should_abort: Callable[[], bool] = lambda: False,
    ) -> bool:
        """Block until a slot frees up.

        Returns ``False`` when ``should_abort`` fires first (stop request or run
        timeout), so the caller never waits on a reviewer that does not show up.
        """

        if not self.enabled:
            return True
        announced = False
        while True:
            count = outstanding()
            if self.may_start_next_trial(count, self.batch_limit):
                return True
            if should_abort():
                return False
            if not announced:
                logger.info(
                    "Waiting for review: %d of %d trials outstanding.",
                    count,
                    self.batch_limit,
                )
                announced = True
            self._sleep(self._poll_interval)


__all__ = ["ConcurrencyGate"]
