"""Failure Coordinator - decides what happens after a step fails.

Policy:
- Transient errors (timeout, service unavailable): retry the same worker up
  to ``max_retries`` times with exponential backoff, then reassign
- Validation rejections: reassign straight away
- Non-retryable errors (invalid input, unknown agent type, cancelled): abort
- Reassign means the next candidate from ``registry.resolve``; when there
  is none left the step is aborted
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from orchestrationCore.agents.registry import CapabilityRegistry
from orchestrationCore.agents.schema import Outcome
from orchestrationCore.planning.schema import PlanStep, StepStatus
from orchestrationCore.utils.errors import (
    NON_RETRYABLE_KINDS,
    TRANSIENT_KINDS,
    ErrorKind,
    UnknownAgentType,
)
from orchestrationCore.utils.logging_utils import log_recovery_decision

from .log import ExecutionLog, LogEvent

LOGGER = logging.getLogger(__name__)


class Action(str, Enum):
    RETRY = "retry"
    REASSIGN = "reassign"
    ABORT = "abort"


@dataclass(frozen=True, slots=True)
class Decision:
    action: Action
    delay: float = 0.0                  # Seconds to wait before re-dispatch
    worker_index: Optional[int] = None  # Candidate used by the next dispatch
    reason: str = ""


class FailureCoordinator:
    """Applies the recovery policy to failed steps of one plan."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        log: ExecutionLog,
        max_retries: int = 2,
        backoff_base: float = 1.0,
        backoff_factor: float = 2.0,
    ) -> None:
        self.registry = registry
        self.log = log
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_factor = backoff_factor

    @classmethod
    def from_settings(cls, registry: CapabilityRegistry, log: ExecutionLog, settings) -> "FailureCoordinator":
        return cls(
            registry,
            log,
            max_retries=settings.max_retries,
            backoff_base=settings.backoff_base,
            backoff_factor=settings.backoff_factor,
        )

    def backoff(self, retry_number: int) -> float:
        """Delay before the ``retry_number``-th retry (1-based)."""
        return self.backoff_base * self.backoff_factor ** (retry_number - 1)

    def on_failure(self, step: PlanStep, outcome: Outcome, rejection: Optional[str] = None) -> Decision:
        """Decide and record what to do with a failed step.

        Args:
            step: The failed step; its status and worker bookkeeping are updated
            outcome: Last outcome of the step
            rejection: Validator reason when a successful outcome was rejected

        Returns:
            The decision, already appended to the execution log
        """
        if rejection is not None:
            kind = ErrorKind.VALIDATION_REJECTED
        else:
            kind = outcome.error or ErrorKind.SERVICE_UNAVAILABLE

        if kind in NON_RETRYABLE_KINDS:
            decision = Decision(Action.ABORT, reason=outcome.detail or f"{kind.value} is not retryable")
        elif kind in TRANSIENT_KINDS and step.worker_attempts <= self.max_retries:
            decision = Decision(
                Action.RETRY,
                delay=self.backoff(step.worker_attempts),
                worker_index=step.worker_index,
                reason=f"{kind.value} on attempt {step.worker_attempts} of worker #{step.worker_index}",
            )
        else:
            decision = self._reassign_or_abort(step, kind, rejection)

        self._apply(step, kind, decision)
        return decision

    def _reassign_or_abort(self, step: PlanStep, kind: ErrorKind, rejection: Optional[str]) -> Decision:
        cause = rejection or kind.value
        try:
            candidates = self.registry.resolve(step.agent_type)
        except UnknownAgentType:
            return Decision(Action.ABORT, reason=f"{cause}; agent type no longer registered")

        next_index = step.worker_index + 1
        if next_index < len(candidates):
            return Decision(Action.REASSIGN, worker_index=next_index, reason=cause)
        return Decision(Action.ABORT, reason=f"{cause}; no fallback worker left")

    def _apply(self, step: PlanStep, kind: ErrorKind, decision: Decision) -> None:
        if decision.action is Action.RETRY:
            step.status = StepStatus.RETRY_PENDING
            self.log.append(
                step.id,
                LogEvent.RETRIED,
                error=kind.value,
                retry=step.worker_attempts,
                delay=decision.delay,
                worker_index=step.worker_index,
            )
        elif decision.action is Action.REASSIGN:
            previous = step.worker_index
            step.status = StepStatus.REASSIGN_PENDING
            step.worker_index = decision.worker_index
            step.worker_attempts = 0
            self.log.append(
                step.id,
                LogEvent.REASSIGNED,
                error=kind.value,
                from_worker=previous,
                to_worker=decision.worker_index,
                reason=decision.reason,
            )
        else:
            step.status = StepStatus.TERMINALLY_FAILED
            self.log.append(step.id, LogEvent.ABORTED, error=kind.value, reason=decision.reason)

        log_recovery_decision(LOGGER, step, decision.action.value, decision.reason)


__all__ = ["Action", "Decision", "FailureCoordinator"]
