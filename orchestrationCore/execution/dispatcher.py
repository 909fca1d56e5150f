"""Dispatcher - runs one ExecutionPlan to a terminal status.

A single coroutine (``run``) owns the plan. Every dispatch is its own
asyncio task; completions are collected with ``asyncio.wait`` and settled
one at a time, so step state is only ever touched from the dispatcher
coroutine (plus the Failure Coordinator it calls).

Step lifecycle::

    pending → dispatched → succeeded
                         → failed → retry-pending    → dispatched
                                  → reassign-pending → dispatched
                                  → terminally-failed
    pending → skipped   (a dependency terminally failed or was skipped)
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Dict, List

from orchestrationCore.agents.registry import CapabilityRegistry, worker_name
from orchestrationCore.agents.schema import Outcome, StepTask
from orchestrationCore.planning.schema import ExecutionPlan, PlanStatus, PlanStep, StepStatus
from orchestrationCore.utils.errors import ErrorKind, UnknownAgentType, classify_worker_error
from orchestrationCore.utils.logging_utils import log_plan_finished, log_step_transition

from .log import ExecutionLog, LogEvent
from .recovery import Action, FailureCoordinator
from .validator import Validator

if TYPE_CHECKING:
    from orchestrationCore.runtime.context import ConversationContext

LOGGER = logging.getLogger(__name__)

_BLOCKING_STATUSES = (StepStatus.TERMINALLY_FAILED, StepStatus.SKIPPED)


class Dispatcher:
    """Executes the steps of one plan in dependency order."""

    def __init__(
        self,
        plan: ExecutionPlan,
        registry: CapabilityRegistry,
        context: ConversationContext,
        *,
        validator: Validator,
        coordinator: FailureCoordinator,
        log: ExecutionLog,
    ) -> None:
        self.plan = plan
        self.registry = registry
        self.context = context
        self.validator = validator
        self.coordinator = coordinator
        self.log = log
        self._in_flight: Dict[asyncio.Task, PlanStep] = {}
        self._cancelled = False
        self._cancel_reason = ""

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    # ========== Public API ==========

    async def run(self) -> ExecutionPlan:
        """Drive the plan until every step is terminal.

        Step failures never raise; they end up in step status and the log.
        Cancelling the task running this coroutine cancels the plan and
        re-raises ``asyncio.CancelledError`` after the plan has settled.
        """
        self.plan.settle(PlanStatus.RUNNING)
        LOGGER.info(f"Dispatching plan {self.plan.id} ({len(self.plan.steps)} steps)")

        try:
            while True:
                if not self._cancelled:
                    for step in self._ready_steps():
                        self._launch(step)
                if not self._in_flight:
                    break

                done, _ = await asyncio.wait(self._in_flight, return_when=asyncio.FIRST_COMPLETED)
                # Settle in plan order so simultaneous completions log deterministically
                for task in sorted(done, key=lambda t: self.plan.steps.index(self._in_flight[t])):
                    step = self._in_flight.pop(task)
                    self._settle(step, task)
        except asyncio.CancelledError:
            self._mark_cancelled("dispatcher task cancelled")
            await self._drain()
            self._finalize()
            raise

        self._finalize()
        return self.plan

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Interrupt every in-flight step and stop dispatching."""
        if self.plan.is_terminal:
            return
        self._mark_cancelled(reason)
        for task in self._in_flight:
            task.cancel()

    # ========== Dispatching ==========

    def _mark_cancelled(self, reason: str) -> None:
        if not self._cancelled:
            self._cancelled = True
            self._cancel_reason = reason
            LOGGER.warning(f"Plan {self.plan.id} cancelled: {reason}")

    def _ready_steps(self) -> List[PlanStep]:
        ready = []
        for step in self.plan.steps:
            if step.status != StepStatus.PENDING:
                continue
            if all(self.plan.get_step(dep).status == StepStatus.SUCCEEDED for dep in step.depends_on):
                ready.append(step)
        return ready

    def _launch(self, step: PlanStep, delay: float = 0.0) -> None:
        if step.attempts == 0:
            step.status = StepStatus.DISPATCHED
            self.log.append(step.id, LogEvent.DISPATCHED, agent_type=step.agent_type)
            log_step_transition(LOGGER, self.plan.id, step, LogEvent.DISPATCHED.value)
        task = asyncio.create_task(self._execute(step, delay), name=f"step-{step.id}")
        self._in_flight[task] = step

    async def _execute(self, step: PlanStep, delay: float) -> Outcome:
        if delay > 0:
            await asyncio.sleep(delay)

        try:
            worker = self.registry.resolve(step.agent_type)[step.worker_index]
        except UnknownAgentType as e:
            return Outcome.fail(ErrorKind.UNKNOWN_AGENT_TYPE, str(e))
        except IndexError:
            return Outcome.fail(ErrorKind.UNKNOWN_AGENT_TYPE, f"no worker #{step.worker_index} for {step.agent_type}")

        step.status = StepStatus.DISPATCHED
        step.attempts += 1
        step.worker_attempts += 1
        task = StepTask(
            plan_id=self.plan.id,
            step_id=step.id,
            agent_type=step.agent_type,
            input=step.input,
            upstream=self._upstream(step),
            attempt=step.attempts,
        )
        LOGGER.debug(f"Step {step.id} attempt {step.attempts} → {worker_name(worker)}")
        return await self.registry.invoke(
            worker,
            task,
            self.context,
            on_progress=lambda chunk: self.log.publish_progress(step.id, chunk),
        )

    def _upstream(self, step: PlanStep) -> Dict[str, object]:
        upstream = {}
        for dep in step.depends_on:
            outcome = self.plan.get_step(dep).outcome
            upstream[dep] = outcome.payload if outcome else None
        return upstream

    # ========== Settling ==========

    def _outcome_of(self, task: asyncio.Task) -> Outcome:
        if task.cancelled():
            return Outcome.fail(ErrorKind.CANCELLED, self._cancel_reason or "step cancelled")
        error = task.exception()
        if error is not None:
            LOGGER.error(f"Dispatch of {task.get_name()} raised", exc_info=error)
            return Outcome.fail(classify_worker_error(error), f"{type(error).__name__}: {error}")
        return task.result()

    def _settle(self, step: PlanStep, task: asyncio.Task) -> None:
        outcome = self._outcome_of(task)
        if self._cancelled and not outcome.success:
            outcome = Outcome.fail(ErrorKind.CANCELLED, self._cancel_reason)
        step.outcome = outcome

        verdict = self.validator.validate(step, outcome)
        if verdict.accepted:
            step.status = StepStatus.SUCCEEDED
            step.rejection_reason = None
            self.log.append(step.id, LogEvent.VALIDATED)
            self.log.append(step.id, LogEvent.SUCCEEDED, attempts=step.attempts, worker_index=step.worker_index)
            log_step_transition(LOGGER, self.plan.id, step, LogEvent.SUCCEEDED.value)
            return

        if self._cancelled and outcome.success:
            # No reassignment once the plan is cancelled
            outcome = step.outcome = Outcome.fail(ErrorKind.CANCELLED, self._cancel_reason)

        step.status = StepStatus.FAILED
        if outcome.success:
            step.rejection_reason = verdict.reason
            self.log.append(step.id, LogEvent.REJECTED, reason=verdict.reason)
            log_step_transition(LOGGER, self.plan.id, step, LogEvent.REJECTED.value, {"reason": verdict.reason})
            decision = self.coordinator.on_failure(step, outcome, rejection=verdict.reason)
        else:
            self.log.append(step.id, LogEvent.FAILED, error=outcome.error.value, detail=outcome.detail)
            log_step_transition(LOGGER, self.plan.id, step, LogEvent.FAILED.value, {"error": outcome.error.value})
            decision = self.coordinator.on_failure(step, outcome)

        if decision.action in (Action.RETRY, Action.REASSIGN):
            self._launch(step, decision.delay)
            return

        if outcome.error == ErrorKind.CANCELLED and not self._cancelled:
            # A step cancelled from outside takes the whole plan down with it
            self.cancel(f"step {step.id} was cancelled")
        self._skip_blocked()

    def _skip_blocked(self) -> None:
        """Skip pending steps downstream of a failed or skipped step, transitively."""
        changed = True
        while changed:
            changed = False
            for step in self.plan.steps:
                if step.status != StepStatus.PENDING:
                    continue
                blocker = next(
                    (dep for dep in step.depends_on if self.plan.get_step(dep).status in _BLOCKING_STATUSES),
                    None,
                )
                if blocker is not None:
                    self._skip(step, blocked_by=blocker)
                    changed = True

    def _skip(self, step: PlanStep, **detail) -> None:
        step.status = StepStatus.SKIPPED
        self.log.append(step.id, LogEvent.SKIPPED, **detail)
        log_step_transition(LOGGER, self.plan.id, step, LogEvent.SKIPPED.value, detail)

    # ========== Teardown ==========

    async def _drain(self) -> None:
        """Cancel and settle everything still in flight."""
        for task in self._in_flight:
            task.cancel()
        while self._in_flight:
            done, _ = await asyncio.wait(self._in_flight)
            for task in sorted(done, key=lambda t: self.plan.steps.index(self._in_flight[t])):
                self._settle(self._in_flight.pop(task), task)

    def _finalize(self) -> None:
        for step in self.plan.steps:
            if not step.is_terminal:
                self._skip(step, reason=self._cancel_reason or "unreachable")

        statuses = [step.status for step in self.plan.steps]
        if all(s == StepStatus.SUCCEEDED for s in statuses):
            status = PlanStatus.COMPLETED
        elif self._cancelled or self.plan.require_all or StepStatus.SUCCEEDED not in statuses:
            status = PlanStatus.FAILED
        else:
            status = PlanStatus.PARTIALLY_FAILED

        self.plan.settle(status)
        log_plan_finished(LOGGER, self.plan)
        self.log.close()


__all__ = ["Dispatcher"]
