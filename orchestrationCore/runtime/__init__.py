"""Runtime: conversation context, the Supervisor and application assembly."""

from .context import ConversationContext
from .supervisor import AgentResponse, ResponseStatus, StepFailure, StepResult, Supervisor, UserRequest
from .app import build_supervisor, configure_tracing

__all__ = [
    "ConversationContext",
    "AgentResponse",
    "ResponseStatus",
    "StepFailure",
    "StepResult",
    "Supervisor",
    "UserRequest",
    "build_supervisor",
    "configure_tracing",
]
