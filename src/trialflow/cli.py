"""Command line interface for running an optimization from a YAML file."""
from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Sequence

import yaml
from pydantic import ValidationError

from .config import OptimizationConfig
from .model import ProgressState
from .orchestrator import OptimizationOutcome

_WAIT_SLICE_SECONDS = 0.2


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run a black-box optimization loop or inspect the configuration summary."
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs/quadratic.yaml"),
        help="Path to the optimization configuration YAML file.",
    )
    parser.add_argument(
        "--as-json",
        action="store_true",
        help="Print the validated configuration as JSON for downstream tooling.",
    )
    parser.add_argument(
        "--summarize",
        action="store_true",
        help="Only print a summary of the configuration without running the loop.",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Print a progress line after every trial.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging level for library messages.",
    )
    return parser.parse_args(argv)


def load_config(path: Path) -> OptimizationConfig:
    if not path.exists():
        raise SystemExit(f"Configuration file not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)

    if not isinstance(data, dict):
        raise SystemExit("Configuration root must be a mapping (YAML dictionary).")

    try:
        return OptimizationConfig.model_validate(data)
    except ValidationError as exc:
        details = []
        for error in exc.errors(include_url=False):
            location = ".".join(str(loc) for loc in error["loc"])
            details.append(f"- {location or '<root>'}: {error['msg']}")
        message = "Configuration validation failed:\n" + "\n".join(details)
        raise SystemExit(message) from exc


def summarize_config(config: Mapping[str, Any]) -> str:
    metadata = config.get("metadata", {})
    study = config.get("study", {})
    stopping = config.get("stopping", {})
    hitl = config.get("human_in_the_loop", {})
    variables: Dict[str, Any] = config.get("variables", {})

    timeout = stopping.get("timeout_seconds") or 0
    lines = [
        f"Experiment name : {metadata.get('name', 'N/A')}",
        f"Description    : {metadata.get('description') or 'N/A'}",
        "",
        "[Study]",
        f"  Name         : {study.get('name', 'N/A')}",
        f"  Sampler      : {study.get('sampler', 'N/A')}",
        f"  Storage      : {study.get('storage') or 'in-memory'}",
        f"  Continue     : {'yes' if study.get('continue_study') else 'no'}",
        "",
        "[Variables]",
    ]
    for name, spec in variables.items():
        kind = "int" if spec.get("integer") else "float"
        step = f", step {spec['step']}" if spec.get("step") is not None else ""
        lines.append(f"  {name:<12} : {kind} [{spec.get('low')}, {spec.get('high')}]{step}")
    lines.extend(
        [
            "",
            f"Objectives     : {', '.join(config.get('objectives', [])) or 'N/A'}",
            "",
            "[Stopping]",
            f"  max_trials   : {stopping.get('max_trials', 'N/A')}",
            f"  timeout      : {f'{timeout}s' if timeout > 0 else 'none'}",
            "",
            f"Human review   : {'batch of ' + str(hitl.get('batch_size')) if hitl.get('enabled') else 'off'}",
        ]
    )
    return "\n".join(lines)


def format_progress(state: ProgressState) -> str:
    best = "N/A"
    if state.best_values:
        best = ", ".join(str(list(values)) for values in state.best_values[:3])
        if len(state.best_values) > 3:
            best += f" (+{len(state.best_values) - 3} more)"
    eta = int(state.estimated_time_remaining.total_seconds())
    return (
        f"[trial {state.trial_number + 1}] hv={state.hypervolume_ratio:.3f} "
        f"eta={eta}s best={best}"
    )


def format_result(outcome: OptimizationOutcome, variable_names: Sequence[str]) -> str:
    lines = [
        "Optimization finished.",
        f"End state       : {outcome.end_state.value}",
        f"Trials executed : {outcome.trials_completed}",
    ]
    if outcome.optimum is not None:
        lines.append("Best parameters :")
        lines.extend(
            f"  - {name}: {value}" for name, value in zip(variable_names, outcome.optimum)
        )
    if outcome.best_values:
        lines.append(f"Best values     : {[list(values) for values in outcome.best_values]}")
    if outcome.error:
        lines.append(f"Error           : {outcome.error}")
    return "\n".join(lines)


def _print_fatal(message: str) -> None:
    print(f"Optimization aborted: {message}", file=sys.stderr)


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config_model = load_config(args.config)
    config = config_model.model_dump(mode="python")

    if args.as_json:
        print(json.dumps(config, indent=2, ensure_ascii=False))
        return

    if args.summarize:
        print(summarize_config(config))
        return

    from .optimization import OptimizationJob

    job = OptimizationJob(
        config_model,
        progress_sink=(lambda state: print(format_progress(state))) if args.progress else None,
        on_fatal=_print_fatal,
    )

    def _handle_sigint(signum: int, frame: Any) -> None:
        print("Stop requested; finishing the current trial...", file=sys.stderr)
        job.request_stop()

    previous = signal.signal(signal.SIGINT, _handle_sigint)
    try:
        job.start()
        outcome = job.wait(_WAIT_SLICE_SECONDS)
        while outcome is None:
            outcome = job.wait(_WAIT_SLICE_SECONDS)
    finally:
        signal.signal(signal.SIGINT, previous)

    print(format_result(outcome, list(config_model.variables)))
    if not outcome.succeeded:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
