"""Capability contract types.

Every worker, whatever it wraps, receives a ``StepTask`` plus a read-only
``ConversationContext`` and produces an ``Outcome``. Streaming workers may
emit ``PartialPayload`` chunks before the final ``Outcome``.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from orchestrationCore.utils.errors import ErrorKind


class AgentType(str, Enum):
    """Built-in agent types. Plugins may register any other string."""

    PLANNER = "planner"
    CODER = "coder"
    TUTOR = "tutor"
    DEPLOYMENT = "deployment"


def agent_key(agent_type: str | AgentType) -> str:
    """Normalise an agent type (enum or plain string) to its registry key."""
    if isinstance(agent_type, AgentType):
        return agent_type.value
    return str(agent_type)


@dataclass(frozen=True, slots=True)
class AgentDescriptor:
    """Static description of one agent type.

    Registered once at startup and read-only thereafter.

    Attributes:
        agent_type: Registry key (e.g. "planner")
        max_concurrency: Admission limit for concurrent invocations
        timeout: Hard deadline per invocation, in seconds
        generative: Whether outputs must carry a non-empty payload
        description: Human-readable summary
    """

    agent_type: str
    max_concurrency: int = 4
    timeout: float = 60.0
    generative: bool = True
    description: str = ""

    def __post_init__(self) -> None:
        if self.max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1 (got {self.max_concurrency})")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0 (got {self.timeout})")


@dataclass(frozen=True, slots=True)
class StepTask:
    """What a worker receives for one attempt of one plan step."""

    plan_id: str
    step_id: str
    agent_type: str
    input: Mapping[str, Any] = field(default_factory=dict)
    upstream: Mapping[str, Any] = field(default_factory=dict)  # {step_id: payload}
    attempt: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "input", MappingProxyType(copy.deepcopy(dict(self.input))))
        object.__setattr__(self, "upstream", MappingProxyType(dict(self.upstream)))


@dataclass(frozen=True)
class Outcome:
    """Result of a single capability invocation."""

    success: bool
    payload: Any = None
    error: Optional[ErrorKind] = None
    detail: str = ""

    @classmethod
    def ok(cls, payload: Any) -> "Outcome":
        return cls(success=True, payload=payload)

    @classmethod
    def fail(cls, error: ErrorKind, detail: str = "") -> "Outcome":
        return cls(success=False, error=error, detail=detail)


@dataclass(frozen=True, slots=True)
class PartialPayload:
    """One chunk emitted by a streaming worker before its final Outcome."""

    chunk: Any


__all__ = [
    "AgentType",
    "AgentDescriptor",
    "StepTask",
    "Outcome",
    "PartialPayload",
    "agent_key",
]
