"""Plan Builder - turns a classified Intent into an ExecutionPlan.

The intent → agent types table is the single seam for adding task
categories. Step selectors are the extension point for runtime-dependent
agent selection (e.g. dropping deployment for a project that is not ready).
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import yaml

from orchestrationCore.agents.registry import CapabilityRegistry
from orchestrationCore.agents.schema import AgentType, agent_key
from orchestrationCore.config.project_root import resolve_config_path
from orchestrationCore.utils.errors import ConfigurationError, InvalidPlan
from orchestrationCore.utils.logging_utils import log_plan_created

from .schema import ExecutionPlan, Intent, IntentType, PlanStep, new_id

if TYPE_CHECKING:
    from orchestrationCore.runtime.context import ConversationContext

LOGGER = logging.getLogger(__name__)

DEFAULT_INTENT_AGENTS: Dict[str, List[str]] = {
    IntentType.CREATE_PROJECT.value: [AgentType.PLANNER.value, AgentType.CODER.value],
    IntentType.GENERATE_CODE.value: [AgentType.CODER.value],
    IntentType.DEBUG_ERROR.value: [AgentType.TUTOR.value, AgentType.CODER.value],
    IntentType.EXPLAIN_CODE.value: [AgentType.TUTOR.value],
    IntentType.DEPLOY_APP.value: [AgentType.CODER.value, AgentType.DEPLOYMENT.value],
    IntentType.GENERAL_QUESTION.value: [AgentType.TUTOR.value],
}
FALLBACK_AGENTS: List[str] = [AgentType.TUTOR.value]

# Intent slots interpreted by the builder rather than forwarded to workers
CONTROL_SLOTS = frozenset({"independent", "subtasks", "all_or_nothing"})

StepSelector = Callable[[Intent, "ConversationContext", List[str]], List[str]]


def skip_deployment_unless_ready(intent: Intent, context: ConversationContext, agent_types: List[str]) -> List[str]:
    """Drop the deployment step when the intent says the project is not deploy-ready."""
    if intent.slots.get("deploy_ready") is False:
        return [t for t in agent_types if t != AgentType.DEPLOYMENT.value]
    return agent_types


DEFAULT_SELECTORS: List[StepSelector] = [skip_deployment_unless_ready]


def load_intent_table(config_path: Path) -> tuple[Dict[str, List[str]], Optional[List[str]]]:
    """Load intents.yaml → (table, fallback). Missing file → empty table."""
    if not config_path.exists():
        LOGGER.warning(f"Intents config not found: {config_path}, using built-in table")
        return {}, None

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Malformed intents config {config_path}: {e}") from e

    table = {str(k): [agent_key(a) for a in (v or [])] for k, v in (config.get("intents") or {}).items()}
    fallback = config.get("fallback")
    LOGGER.info(f"Loaded intent table from {config_path} ({len(table)} intents)")
    return table, [agent_key(a) for a in fallback] if fallback else None


class PlanBuilder:
    """Builds and validates execution plans."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        intent_table: Optional[Mapping[str, Sequence[str]]] = None,
        fallback: Optional[Sequence[str]] = None,
        selectors: Optional[Iterable[StepSelector]] = None,
    ) -> None:
        self.registry = registry
        table = {k: list(v) for k, v in DEFAULT_INTENT_AGENTS.items()}
        if intent_table:
            table.update({str(k): [agent_key(a) for a in v] for k, v in intent_table.items()})
        self.intent_table = table
        self.fallback = list(fallback) if fallback else list(FALLBACK_AGENTS)
        self.selectors = list(DEFAULT_SELECTORS if selectors is None else selectors)
        self._check_total()

    @classmethod
    def from_config(
        cls,
        registry: CapabilityRegistry,
        config_path: Optional[str | Path] = None,
        selectors: Optional[Iterable[StepSelector]] = None,
    ) -> "PlanBuilder":
        table, fallback = load_intent_table(resolve_config_path(config_path, "intents.yaml"))
        return cls(registry, intent_table=table, fallback=fallback, selectors=selectors)

    def _check_total(self) -> None:
        missing = [t.value for t in IntentType if not self.intent_table.get(t.value)]
        if missing:
            raise ConfigurationError(f"Intent table has no agents for: {', '.join(missing)}")
        if not self.fallback:
            raise ConfigurationError("Intent table fallback must not be empty")

    # ========== Building ==========

    def agents_for(self, intent: Intent, context: ConversationContext) -> List[str]:
        """Agent types for an intent, after table lookup and selectors."""
        agent_types = list(self.intent_table.get(intent.type, self.fallback))
        for selector in self.selectors:
            agent_types = list(selector(intent, context, agent_types))
        return agent_types

    def build(self, intent: Intent, context: ConversationContext) -> ExecutionPlan:
        """Build a validated ExecutionPlan for ``intent``.

        Raises:
            InvalidPlan: Cycle, dangling reference or unregistered agent type
        """
        base_input = {
            "intent": intent.type,
            "confidence": intent.confidence,
            "slots": {k: v for k, v in intent.slots.items() if k not in CONTROL_SLOTS},
        }

        subtasks = intent.slots.get("subtasks")
        if subtasks:
            steps = self._steps_from_subtasks(subtasks, base_input)
        else:
            agent_types = self.agents_for(intent, context)
            if not agent_types:
                raise InvalidPlan(f"no agents selected for intent '{intent.type}'")
            steps = self._chain(agent_types, base_input, independent=bool(intent.slots.get("independent")))

        plan = ExecutionPlan(
            intent_type=intent.type,
            steps=steps,
            require_all=bool(intent.slots.get("all_or_nothing", False)),
        )
        self.validate(plan)
        log_plan_created(LOGGER, plan)
        return plan

    def _chain(self, agent_types: List[str], base_input: Dict[str, Any], independent: bool) -> List[PlanStep]:
        steps: List[PlanStep] = []
        for agent_type in agent_types:
            depends_on = [] if independent or not steps else [steps[-1].id]
            steps.append(PlanStep(
                id=new_id(),
                agent_type=agent_type,
                input=copy.deepcopy(base_input),
                depends_on=depends_on,
            ))
        return steps

    def _steps_from_subtasks(self, subtasks: Any, base_input: Dict[str, Any]) -> List[PlanStep]:
        """Explicit decomposition: ``[{key, agent_type, depends_on, input}]``.

        Keys are local to the intent; each gets a fresh step id.
        """
        if isinstance(subtasks, (str, bytes)) or not isinstance(subtasks, Sequence):
            raise InvalidPlan("malformed subtasks", problems=["subtasks must be a list of objects"])

        problems: List[str] = []
        ids: Dict[str, str] = {}
        for i, subtask in enumerate(subtasks):
            if not isinstance(subtask, Mapping):
                problems.append(f"subtask #{i} is not an object: {subtask!r}")
                continue
            key = str(subtask.get("key") or i)
            if key in ids:
                problems.append(f"duplicate subtask key: {key}")
            ids[key] = new_id()
            agent_type = subtask.get("agent_type")
            if not agent_type or not isinstance(agent_type, str):
                problems.append(f"subtask {key} has no agent_type")
            depends_on = subtask.get("depends_on")
            if depends_on is not None and (isinstance(depends_on, str) or not isinstance(depends_on, Sequence)):
                problems.append(f"subtask {key}: depends_on must be a list")
            if subtask.get("input") is not None and not isinstance(subtask["input"], Mapping):
                problems.append(f"subtask {key}: input must be an object")
        if problems:
            raise InvalidPlan("malformed subtasks", problems=problems)

        steps: List[PlanStep] = []
        for i, subtask in enumerate(subtasks):
            key = str(subtask.get("key") or i)
            depends_on = []
            for dep in subtask.get("depends_on") or []:
                # unknown keys are kept verbatim so validate() reports them
                depends_on.append(ids.get(str(dep), str(dep)))
            steps.append(PlanStep(
                id=ids[key],
                agent_type=agent_key(subtask["agent_type"]),
                input=copy.deepcopy({**base_input, **(subtask.get("input") or {})}),
                depends_on=depends_on,
            ))
        return steps

    # ========== Validation ==========

    def validate(self, plan: ExecutionPlan) -> None:
        """Reject plans that cannot be executed.

        Raises:
            InvalidPlan: With every problem found listed in ``problems``
        """
        problems: List[str] = []
        step_ids = [step.id for step in plan.steps]
        known = set(step_ids)

        if not plan.steps:
            problems.append("plan has no steps")
        if len(known) != len(step_ids):
            problems.append("duplicate step ids")

        for step in plan.steps:
            if not self.registry.is_registered(step.agent_type):
                problems.append(f"step {step.id}: unregistered agent type '{step.agent_type}'")
            for dep in step.depends_on:
                if dep == step.id:
                    problems.append(f"step {step.id} depends on itself")
                elif dep not in known:
                    problems.append(f"step {step.id} depends on unknown step '{dep}'")

        if problems:
            raise InvalidPlan("; ".join(problems), problems=problems)

        plan.topological_order()  # raises InvalidPlan on cycles


__all__ = [
    "DEFAULT_INTENT_AGENTS",
    "FALLBACK_AGENTS",
    "DEFAULT_SELECTORS",
    "PlanBuilder",
    "StepSelector",
    "load_intent_table",
    "skip_deployment_unless_ready",
]
