"""Plan schema: intents, steps and execution plans."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from orchestrationCore.agents.schema import Outcome
from orchestrationCore.utils.errors import InvalidPlan


class IntentType(str, Enum):
    """Intent categories produced by the classification service."""

    CREATE_PROJECT = "create_project"
    GENERATE_CODE = "generate_code"
    DEBUG_ERROR = "debug_error"
    EXPLAIN_CODE = "explain_code"
    DEPLOY_APP = "deploy_app"
    GENERAL_QUESTION = "general_question"


@dataclass(frozen=True)
class Intent:
    """Classified user intent. Immutable once received.

    ``type`` is kept as a plain string so that intents the table does not
    know (yet) still reach the Plan Builder's fallback.
    """

    type: str
    confidence: float = 1.0
    slots: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.type, IntentType):
            object.__setattr__(self, "type", self.type.value)
        object.__setattr__(self, "slots", MappingProxyType(dict(self.slots)))


class StepStatus(str, Enum):
    PENDING = "pending"
    DISPATCHED = "dispatched"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RETRY_PENDING = "retry-pending"
    REASSIGN_PENDING = "reassign-pending"
    TERMINALLY_FAILED = "terminally-failed"
    SKIPPED = "skipped"


TERMINAL_STEP_STATUSES = frozenset({StepStatus.SUCCEEDED, StepStatus.TERMINALLY_FAILED, StepStatus.SKIPPED})


class PlanStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIALLY_FAILED = "partially-failed"


TERMINAL_PLAN_STATUSES = frozenset({PlanStatus.COMPLETED, PlanStatus.FAILED, PlanStatus.PARTIALLY_FAILED})


def new_id() -> str:
    return uuid.uuid4().hex[:12]


class PlanStep(BaseModel):
    """Single executable step, bound to one agent type.

    Mutated only by the Dispatcher and the Failure Coordinator.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(min_length=1)
    agent_type: str = Field(min_length=1)
    input: Dict[str, Any] = Field(default_factory=dict)
    depends_on: List[str] = Field(default_factory=list)
    status: StepStatus = StepStatus.PENDING
    attempts: int = 0                  # Dispatches across all workers
    worker_index: int = 0              # Position in the registry's candidate list
    worker_attempts: int = 0           # Dispatches on the current worker
    outcome: Optional[Outcome] = None  # Last outcome, successful or not
    rejection_reason: Optional[str] = None

    @field_validator("depends_on")
    @classmethod
    def _dedupe(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STEP_STATUSES


class ExecutionPlan(BaseModel):
    """Ordered, dependency-annotated set of steps derived from one intent."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    intent_type: str
    steps: List[PlanStep]
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: PlanStatus = PlanStatus.PENDING
    require_all: bool = False  # Any failure fails the whole plan

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PLAN_STATUSES

    def settle(self, status: PlanStatus) -> None:
        """Move to a status; a terminal status can never be changed."""
        if self.is_terminal:
            raise RuntimeError(f"Plan {self.id} already settled as {self.status.value}")
        self.status = status

    def get_step(self, step_id: str) -> PlanStep:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(f"Unknown step: {step_id}")

    def dependents_of(self, step_id: str) -> List[PlanStep]:
        return [step for step in self.steps if step_id in step.depends_on]

    def topological_order(self) -> List[PlanStep]:
        """Steps in dependency order, ties broken by insertion order.

        Raises:
            InvalidPlan: The dependency graph contains a cycle
        """
        remaining = {step.id: set(step.depends_on) for step in self.steps}
        ordered: List[PlanStep] = []
        while remaining:
            ready = [step for step in self.steps if step.id in remaining and not remaining[step.id]]
            if not ready:
                raise InvalidPlan(
                    "dependency graph contains a cycle",
                    problems=[f"cycle among steps: {sorted(remaining)}"],
                )
            for step in ready:
                ordered.append(step)
                del remaining[step.id]
            for deps in remaining.values():
                deps.difference_update(step.id for step in ready)
        return ordered

    def structure(self) -> List[Tuple[str, Tuple[int, ...]]]:
        """Id-free shape of the plan: (agent type, dependency indices) per step."""
        index = {step.id: i for i, step in enumerate(self.steps)}
        return [
            (step.agent_type, tuple(sorted(index[dep] for dep in step.depends_on)))
            for step in self.steps
        ]


__all__ = [
    "IntentType",
    "Intent",
    "StepStatus",
    "TERMINAL_STEP_STATUSES",
    "PlanStatus",
    "TERMINAL_PLAN_STATUSES",
    "PlanStep",
    "ExecutionPlan",
    "new_id",
]
