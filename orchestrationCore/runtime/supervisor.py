"""Supervisor - the single entry point for user requests.

Flow per request:
1. Update the session's ConversationContext with the user message
2. Resolve the Intent (given, or via the injected IntentClassifier)
3. Build and validate an ExecutionPlan
4. Run it with a Dispatcher on a snapshot of the context
5. Aggregate step results into an AgentResponse
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from langchain_core.messages import AIMessage, HumanMessage

from orchestrationCore.agents.interfaces import IntentClassifier
from orchestrationCore.agents.registry import CapabilityRegistry
from orchestrationCore.config.settings import Settings, get_settings
from orchestrationCore.execution.dispatcher import Dispatcher
from orchestrationCore.execution.log import ExecutionLog
from orchestrationCore.execution.recovery import FailureCoordinator
from orchestrationCore.execution.validator import Validator
from orchestrationCore.planning.builder import PlanBuilder
from orchestrationCore.planning.schema import ExecutionPlan, Intent, PlanStatus, StepStatus
from orchestrationCore.utils.errors import ConfigurationError, ErrorKind
from orchestrationCore.utils.logging_utils import log_agent_response, log_error, log_user_request

from .context import ConversationContext

LOGGER = logging.getLogger(__name__)

PlanStartedCallback = Callable[[ExecutionPlan, ExecutionLog], None]


@dataclass(frozen=True)
class UserRequest:
    """A user request: either an already classified intent or raw text."""

    user_id: str
    intent: Optional[Intent] = None
    text: str = ""
    project_id: Optional[str] = None
    session_id: Optional[str] = None  # None → new session
    language: str = "en"


class ResponseStatus(str, Enum):
    COMPLETED = "completed"
    PARTIALLY_FAILED = "partially-failed"
    FAILED = "failed"
    CONFIGURATION_ERROR = "configuration_error"


@dataclass(frozen=True)
class StepResult:
    step_id: str
    agent_type: str
    payload: Any


@dataclass(frozen=True)
class StepFailure:
    step_id: str
    agent_type: str
    status: str
    error: Optional[str]
    reason: str


@dataclass
class AgentResponse:
    status: ResponseStatus
    session_id: str
    plan_id: Optional[str] = None
    outputs: List[StepResult] = field(default_factory=list)
    failures: List[StepFailure] = field(default_factory=list)
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == ResponseStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "session_id": self.session_id,
            "plan_id": self.plan_id,
            "outputs": [asdict(o) for o in self.outputs],
            "failures": [asdict(f) for f in self.failures],
            "message": self.message,
        }


class Supervisor:
    """Owns sessions, builds plans and runs them to completion."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        builder: Optional[PlanBuilder] = None,
        *,
        classifier: Optional[IntentClassifier] = None,
        validator: Optional[Validator] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.registry = registry
        self.builder = builder or PlanBuilder(registry)
        self.classifier = classifier
        self.validator = validator or Validator.from_settings(registry, self.settings.validation)

        self._sessions: Dict[str, ConversationContext] = {}
        self._plans: Dict[str, ExecutionPlan] = {}
        self._logs: Dict[str, ExecutionLog] = {}
        self._plan_sessions: Dict[str, str] = {}
        self._running: Dict[str, Dispatcher] = {}
        self._finished: Dict[str, asyncio.Event] = {}
        self._closed = False

    # ========== Sessions ==========

    def _open_session(self, request: UserRequest) -> ConversationContext:
        if request.session_id and request.session_id in self._sessions:
            return self._sessions[request.session_id]

        kwargs = {"session_id": request.session_id} if request.session_id else {}
        context = ConversationContext(
            user_id=request.user_id,
            project_id=request.project_id,
            language=request.language,
            **kwargs,
        )
        self._sessions[context.session_id] = context
        LOGGER.info(f"Opened session {context.session_id} for user {request.user_id}")
        return context

    def session(self, session_id: str) -> ConversationContext:
        """Current context of a session (KeyError if unknown)."""
        return self._sessions[session_id]

    def _append(self, session_id: str, message) -> ConversationContext:
        context = self._sessions[session_id].with_message(message)
        self._sessions[session_id] = context
        return context

    # ========== Requests ==========

    async def process_user_request(
        self,
        request: UserRequest,
        on_plan_started: Optional[PlanStartedCallback] = None,
    ) -> AgentResponse:
        """Handle one user request end to end.

        Args:
            request: Classified intent or raw text plus session identity
            on_plan_started: Called with (plan, log) right before dispatching,
                e.g. to subscribe to the execution log

        Returns:
            AgentResponse; configuration problems come back with status
            ``configuration_error`` and nothing dispatched
        """
        if self._closed:
            raise RuntimeError("Supervisor is closed")

        session_id = self._open_session(request).session_id
        intent_label = request.intent.type if request.intent else "<unclassified>"
        log_user_request(LOGGER, session_id, intent_label, request.text)
        context = self._append(session_id, HumanMessage(content=request.text or f"[{intent_label}]"))

        try:
            intent = await self._resolve_intent(request, context)
            plan = self.builder.build(intent, context)
        except ConfigurationError as e:
            log_error(LOGGER, e, context=f"building plan for session {session_id}")
            response = AgentResponse(
                status=ResponseStatus.CONFIGURATION_ERROR,
                session_id=session_id,
                message=e.user_message,
            )
            return self._reply(response)

        log = ExecutionLog(plan.id)
        dispatcher = Dispatcher(
            plan,
            self.registry,
            context.snapshot(),
            validator=self.validator,
            coordinator=FailureCoordinator.from_settings(self.registry, log, self.settings.recovery),
            log=log,
        )
        self._plans[plan.id] = plan
        self._logs[plan.id] = log
        self._plan_sessions[plan.id] = session_id
        self._running[plan.id] = dispatcher
        self._finished[plan.id] = asyncio.Event()

        if on_plan_started is not None:
            on_plan_started(plan, log)

        try:
            await dispatcher.run()
        finally:
            self._running.pop(plan.id, None)
            self._finished.pop(plan.id).set()

        return self._reply(self._compose(plan, session_id))

    async def _resolve_intent(self, request: UserRequest, context: ConversationContext) -> Intent:
        if request.intent is not None:
            return request.intent
        if self.classifier is None:
            raise ConfigurationError(
                "Request carries no intent and no intent classifier is configured",
                user_message="无法识别请求意图：未配置意图分类服务",
            )
        intent = await self.classifier.classify(request.text, context)
        LOGGER.info(f"Classified intent: {intent.type} (confidence={intent.confidence:.2f})")
        return intent

    def _compose(self, plan: ExecutionPlan, session_id: str) -> AgentResponse:
        outputs: List[StepResult] = []
        failures: List[StepFailure] = []
        for step in plan.topological_order():
            if step.status == StepStatus.SUCCEEDED:
                outputs.append(StepResult(step.id, step.agent_type, step.outcome.payload))
                continue

            error = None
            if step.rejection_reason:
                error = ErrorKind.VALIDATION_REJECTED.value
            if step.outcome is not None and step.outcome.error is not None:
                error = step.outcome.error.value
            if step.status == StepStatus.SKIPPED:
                reason = "skipped: an upstream step did not succeed"
            else:
                reason = step.rejection_reason or (step.outcome.detail if step.outcome else "") or "failed"
            failures.append(StepFailure(step.id, step.agent_type, step.status.value, error, reason))

        status = ResponseStatus(plan.status.value)
        if plan.status == PlanStatus.COMPLETED:
            message = f"Completed {len(outputs)} step(s)"
        else:
            message = f"{len(outputs)} of {len(plan.steps)} step(s) succeeded; {len(failures)} did not"

        return AgentResponse(
            status=status,
            session_id=session_id,
            plan_id=plan.id,
            outputs=outputs,
            failures=failures,
            message=message,
        )

    def _reply(self, response: AgentResponse) -> AgentResponse:
        self._append(response.session_id, AIMessage(content=response.message))
        log_agent_response(LOGGER, response.status.value, response.message)
        return response

    # ========== Control ==========

    def cancel(self, plan_id: str, reason: str = "cancelled by user") -> bool:
        """Cancel an in-flight plan. Returns False if it is not running."""
        dispatcher = self._running.get(plan_id)
        if dispatcher is None:
            return False
        dispatcher.cancel(reason)
        return True

    def cancel_session(self, session_id: str, reason: str = "session cancelled") -> int:
        """Cancel every in-flight plan of a session; returns how many."""
        plan_ids = [pid for pid in self._running if self._plan_sessions.get(pid) == session_id]
        return sum(1 for pid in plan_ids if self.cancel(pid, reason))

    def get_plan(self, plan_id: str) -> ExecutionPlan:
        return self._plans[plan_id]

    def get_log(self, plan_id: str) -> ExecutionLog:
        return self._logs[plan_id]

    def running_plans(self) -> List[str]:
        return list(self._running)

    # ========== Retention ==========

    def forget(self, plan_id: str) -> bool:
        """Drop a settled plan and its log. Returns False if unknown or still running."""
        if plan_id in self._running or plan_id not in self._plans:
            return False
        del self._plans[plan_id]
        del self._logs[plan_id]
        self._plan_sessions.pop(plan_id, None)
        LOGGER.debug(f"Forgot plan {plan_id}")
        return True

    def forget_session(self, session_id: str) -> int:
        """Drop a session's context and all of its settled plans; returns how many plans.

        Raises:
            RuntimeError: If a plan of the session is still running
        """
        plan_ids = [pid for pid, sid in self._plan_sessions.items() if sid == session_id]
        if any(pid in self._running for pid in plan_ids):
            raise RuntimeError(f"Session {session_id} still has running plans")
        self._sessions.pop(session_id, None)
        forgotten = sum(1 for pid in plan_ids if self.forget(pid))
        LOGGER.info(f"Forgot session {session_id} ({forgotten} plans)")
        return forgotten

    async def close(self) -> None:
        """Stop accepting requests and cancel everything still running."""
        self._closed = True
        pending = list(self._finished.values())
        for plan_id in list(self._running):
            self.cancel(plan_id, "supervisor closed")
        for event in pending:
            await event.wait()
        LOGGER.info(f"Supervisor closed ({len(self._plans)} plans handled)")


__all__ = [
    "UserRequest",
    "ResponseStatus",
    "StepResult",
    "StepFailure",
    "AgentResponse",
    "Supervisor",
    "PlanStartedCallback",
]
