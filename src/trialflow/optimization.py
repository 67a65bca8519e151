"""Wiring from a validated configuration to a running orchestrator."""
from __future__ import annotations

import logging
import random
import threading
from typing import Any, Callable, Mapping

import numpy as np

from .backend import StudyPreconditionError, build_sampler, create_study
from .config import OptimizationConfig
from .evaluation import load_evaluator
from .orchestrator import OptimizationOutcome, ProgressSink, TrialOrchestrator
from .stopping import StopFlag

logger = logging.getLogger(__name__)


def _seed_global_generators(seed: int | None) -> None:
    if seed is None:
        return
    random.seed(seed)
    np.random.seed(seed)


def _coerce_config(config: OptimizationConfig | Mapping[str, Any]) -> OptimizationConfig:
    if isinstance(config, OptimizationConfig):
        return config
    return OptimizationConfig.model_validate(dict(config))


def build_orchestrator(
    config: OptimizationConfig | Mapping[str, Any],
    *,
    stop_flag: StopFlag | None = None,
    progress_sink: ProgressSink | None = None,
    on_fatal: Callable[[str], None] | None = None,
) -> TrialOrchestrator:
    """Create the study and assemble a :class:`TrialOrchestrator` for ``config``.

    Raises :class:`StudyPreconditionError` when the configured study already
    exists in storage and cannot be reused.
    """

    model = _coerce_config(config)
    study_cfg = model.study
    _seed_global_generators(study_cfg.seed)

    objectives = model.objective_spec()
    sampler = build_sampler(
        study_cfg.sampler,
        study_cfg.seed,
        use_constraints=study_cfg.use_constraints,
    )
    backend = create_study(
        study_cfg.name,
        objectives,
        sampler,
        storage=study_cfg.storage,
        continue_study=study_cfg.continue_study,
    )
    evaluator = load_evaluator(model.evaluator_settings())

    return TrialOrchestrator(
        backend,
        model.variable_list(),
        objectives,
        evaluator,
        model.to_run_config(stop_flag),
        enqueue=model.enqueue,
        progress_sink=progress_sink,
        on_fatal=on_fatal,
    )


def run_optimization(
    config: OptimizationConfig | Mapping[str, Any],
    *,
    stop_flag: StopFlag | None = None,
    progress_sink: ProgressSink | None = None,
    on_fatal: Callable[[str], None] | None = None,
) -> OptimizationOutcome:
    """Run one optimization to completion on the calling thread."""

    model = _coerce_config(config)
    try:
        orchestrator = build_orchestrator(
            model,
            stop_flag=stop_flag,
            progress_sink=progress_sink,
            on_fatal=on_fatal,
        )
    except StudyPreconditionError as exc:
        logger.error("Study '%s' cannot be used: %s", model.study.name, exc)
        if on_fatal is not None:
            on_fatal(str(exc))
        return OptimizationOutcome(end_state=exc.end_state, trials_completed=0, error=str(exc))
    return orchestrator.run()


class OptimizationJob:
    """Run :func:`run_optimization` on a dedicated daemon thread.

    The caller's thread stays responsive; :meth:`request_stop` asks the loop to
    finish after the current cycle and :meth:`wait` returns the outcome.
    """

    def __init__(
        self,
        config: OptimizationConfig | Mapping[str, Any],
        *,
        progress_sink: ProgressSink | None = None,
        on_fatal: Callable[[str], None] | None = None,
    ) -> None:
        self.config = _coerce_config(config)
        self.stop_flag = StopFlag()
        self._progress_sink = progress_sink
        self._on_fatal = on_fatal
        self._outcome: OptimizationOutcome | None = None
        self._error: BaseException | None = None
        self._thread = threading.Thread(
            target=self._run,
            name=f"trialflow-{self.config.study.name}",
            daemon=True,
        )

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> "OptimizationJob":
        self._thread.start()
        return self

    def request_stop(self) -> None:
        logger.info("Stop requested for study '%s'.", self.config.study.name)
        self.stop_flag.request()

    def wait(self, timeout: float | None = None) -> OptimizationOutcome | None:
        """Join the worker; ``None`` means it is still running after ``timeout``.

        An exception raised on the worker thread is re-raised here.
        """

        self._thread.join(timeout)
        if self._thread.is_alive():
            return None
        if self._error is not None:
            raise self._error
        return self._outcome

    def _run(self) -> None:
        try:
            self._outcome = run_optimization(
                self.config,
                stop_flag=self.stop_flag,
                progress_sink=self._progress_sink,
                on_fatal=self._on_fatal,
            )
        except Exception as exc:
            logger.exception("Optimization worker failed")
            self._error = exc


__all__ = ["OptimizationJob", "build_orchestrator", "run_optimization"]
