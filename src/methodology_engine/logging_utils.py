"""Configure engine logging and summarize run results for logs."""

from __future__ import annotations

import json
import sys
from typing import Any

from loguru import logger

from .models import ExecutionOutcome, PhaseExecutionResult


def configure_logging(level: str = "INFO") -> None:
    """Configure loguru logger with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{module}</cyan>:<cyan>{line}</cyan> - "
            "{message}"
        ),
    )


def summarize_phase_result(result: PhaseExecutionResult) -> dict[str, Any]:
    """Render a compact, JSON-friendly summary of one phase attempt.

    Args:
        result: Phase attempt result.

    Returns:
        A dictionary with task tallies and only the unmet exit criteria.
    """
    d: dict[str, Any] = {
        "phase": result.phase_id,
        "iteration": result.iteration,
        "success": result.success,
        "completed_n": result.tasks_completed,
        "failed_n": result.tasks_failed,
        "continue": result.should_continue,
    }
    unmet = [r.reason for r in result.exit_criteria_results if not r.satisfied]
    if unmet:
        d["unmet_exit"] = unmet[:5]
        d["unmet_exit_n"] = len(unmet)
    if result.next_phase_id:
        d["next"] = result.next_phase_id
    return d


def summarize_outcome(outcome: ExecutionOutcome) -> dict[str, Any]:
    d: dict[str, Any] = {
        "success": outcome.success,
        "completed_phases": list(outcome.completed_phases),
        "attempts_n": len(outcome.phase_results),
    }
    if not outcome.success:
        d["failed_phase"] = outcome.failed_phase
        error = outcome.error or ""
        d["error"] = (error[:240] + "…") if len(error) > 240 else error
    return d


def pretty(obj: Any, *, indent: int = 2) -> str:
    """Serialize an object as JSON for readable logs.

    Args:
        obj: Object to serialize.
        indent: Indentation level for JSON output.

    Returns:
        A JSON string when possible; otherwise `str(obj)`.
    """
    try:
        return json.dumps(obj, indent=indent, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(obj)
