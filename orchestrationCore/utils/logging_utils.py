"""Logging utilities for the orchestration core."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from orchestrationCore.planning.schema import ExecutionPlan, PlanStep

ROOT_LOGGER_NAME = "orchestrationCore"

# Max characters of step detail written to the log (LOG_DETAIL_MAX_LENGTH)
_detail_max_length = 500


def setup_logging(
    level: int = logging.INFO,
    log_dir: str | Path = "logs",
    detail_max_length: int = 500,
) -> logging.Logger:
    """Setup logging configuration for the orchestration core.

    Args:
        level: Console logging level (default: INFO)
        log_dir: Directory for the timestamped log file
        detail_max_length: Truncation length for logged step details

    Returns:
        Configured package logger
    """
    global _detail_max_length
    _detail_max_length = detail_max_length

    logs_dir = Path(log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / f"orchestration_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # Capture all child logs, handlers filter
    logger.propagate = False

    # Clear existing handlers
    logger.handlers = []

    # File handler (detailed logs)
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))

    # Console handler (user-friendly)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    logger.info("=" * 80)
    logger.info("Orchestration session started")
    logger.info(f"Log file: {log_file}")
    logger.info("=" * 80)

    return logger


def truncate(value: Any, max_length: Optional[int] = None) -> str:
    """Render a value for log output, truncated to ``max_length`` chars."""
    max_length = max_length or _detail_max_length
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
    if len(text) > max_length:
        return text[:max_length] + "... (truncated)"
    return text


def log_plan_created(logger: logging.Logger, plan: ExecutionPlan) -> None:
    """Log plan creation details.

    Args:
        logger: Logger instance
        plan: Newly built execution plan
    """
    logger.info(f"\n{'='*80}")
    logger.info(f"Plan created: {plan.id}")
    logger.info(f"  Intent: {plan.intent_type}")
    logger.info(f"  Total steps: {len(plan.steps)}")
    for i, step in enumerate(plan.steps, 1):
        logger.info(f"  Step {i}:")
        logger.info(f"    - ID: {step.id}")
        logger.info(f"    - Agent: {step.agent_type}")
        logger.info(f"    - Depends on: {step.depends_on or '-'}")
    logger.info(f"{'='*80}\n")


def log_step_transition(
    logger: logging.Logger,
    plan_id: str,
    step: PlanStep,
    event: str,
    detail: Optional[Dict[str, Any]] = None,
) -> None:
    """Log a single step state transition.

    Args:
        logger: Logger instance
        plan_id: Owning plan
        step: Step that transitioned
        event: Execution log event name
        detail: Extra fields recorded with the event
    """
    logger.info(
        f"[{plan_id[:8]}] step {step.id} ({step.agent_type}) → {event} "
        f"[status={step.status.value}, attempts={step.attempts}]"
    )
    if detail:
        logger.debug(f"  Detail: {truncate(detail)}")


def log_recovery_decision(logger: logging.Logger, step: PlanStep, action: str, reason: str = "") -> None:
    """Log a Failure Coordinator decision.

    Args:
        logger: Logger instance
        step: Failed step
        action: retry | reassign | abort
        reason: Why the decision was taken
    """
    logger.warning(f"Recovery decision for step {step.id} ({step.agent_type}): {action}")
    if reason:
        logger.info(f"  Reason: {reason}")


def log_plan_finished(logger: logging.Logger, plan: ExecutionPlan) -> None:
    """Log the terminal status of a plan and a per-step summary."""
    logger.info(f"\n{'='*80}")
    logger.info(f"Plan {plan.id} finished: {plan.status.value}")
    for step in plan.steps:
        error = step.outcome.error.value if step.outcome and step.outcome.error else "-"
        logger.info(f"  - {step.id} ({step.agent_type}): {step.status.value}, attempts={step.attempts}, error={error}")
    logger.info(f"{'='*80}\n")


def log_error(logger: logging.Logger, error: Exception, context: str = "") -> None:
    """Log error with context.

    Args:
        logger: Logger instance
        error: Exception instance
        context: Additional context about where the error occurred
    """
    logger.error(f"Error occurred: {type(error).__name__}: {str(error)}")
    if context:
        logger.error(f"  Context: {context}")
    logger.debug("Full traceback:", exc_info=error)


def log_user_request(logger: logging.Logger, session_id: str, intent_type: str, text: str = "") -> None:
    """Log an incoming user request."""
    logger.info(f"User request [{session_id[:8]}]: intent={intent_type}")
    if text:
        logger.info(f"  Text: {text[:100]}{'...' if len(text) > 100 else ''}")


def log_agent_response(logger: logging.Logger, status: str, content: str) -> None:
    """Log the response returned to the caller."""
    logger.info(f"Agent response ({status}): {content[:100]}{'...' if len(content) > 100 else ''}")


__all__ = [
    "setup_logging",
    "truncate",
    "log_plan_created",
    "log_step_transition",
    "log_recovery_decision",
    "log_plan_finished",
    "log_error",
    "log_user_request",
    "log_agent_response",
]
