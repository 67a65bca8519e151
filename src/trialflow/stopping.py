"""Loop termination rules and the shared forced-stop flag."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from .model import EndState

logger = logging.getLogger(__name__)


class StopFlag:
    """Level-triggered cancellation request shared with the worker thread.

    Any thread may call :meth:`request`. The loop reads the flag once per cycle
    boundary and clears it when it acts on it, so a stale request never leaks into
    the next run.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def request(self) -> None:
        self._event.set()

    def clear(self) -> None:
        self._event.clear()

    def is_set(self) -> bool:
        return self._event.is_set()

    def consume(self) -> bool:
        """Return whether a stop was requested and reset the flag."""

        if not self._event.is_set():
            return False
        self._event.clear()
        return True

    def __bool__(self) -> bool:
        return self.is_set()


class StopPolicy:
    """Decide whether the optimization loop should terminate.

    Checks run in a fixed order and the first match wins: trial budget, wall-clock
    timeout, then the forced-stop flag.
    """

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic

    def now(self) -> float:
        return self._clock()

    def elapsed(self, start_time: float) -> float:
        return self._clock() - start_time

    def should_stop(
        self,
        trial_number: int,
        max_trials: int,
        start_time: float,
        timeout_seconds: float,
        forced_stop: StopFlag,
    ) -> EndState | None:
        if trial_number >= max_trials:
            return EndState.ALL_TRIALS_COMPLETED
        if timeout_seconds > 0 and self.elapsed(start_time) >= timeout_seconds:
            return EndState.TIMEOUT
        if forced_stop.consume():
            logger.info("Stop requested by user after %d trials.", trial_number)
            return EndState.STOPPED_BY_USER
        return None


__all__ = ["StopFlag", "StopPolicy"]
