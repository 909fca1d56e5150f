"""Top-level package exports for orchestrationCore."""

from .runtime import AgentResponse, Supervisor, UserRequest, build_supervisor
from .planning import Intent, IntentType
from .main import main

__version__ = "0.1.0"

__all__ = ["AgentResponse", "Supervisor", "UserRequest", "build_supervisor", "Intent", "IntentType", "main"]
