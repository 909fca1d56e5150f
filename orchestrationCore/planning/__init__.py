"""Intent → ExecutionPlan decomposition."""

from .schema import ExecutionPlan, Intent, IntentType, PlanStatus, PlanStep, StepStatus
from .builder import PlanBuilder, StepSelector, skip_deployment_unless_ready

__all__ = [
    "ExecutionPlan",
    "Intent",
    "IntentType",
    "PlanStatus",
    "PlanStep",
    "StepStatus",
    "PlanBuilder",
    "StepSelector",
    "skip_deployment_unless_ready",
]
