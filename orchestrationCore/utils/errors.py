"""Error taxonomy for the orchestration core.

Only ``ConfigurationError`` (and its subclasses) ever reaches the caller of
the Supervisor. Worker-level errors are converted to ``Outcome`` objects by
the Capability Registry and absorbed by the Failure Coordinator.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional


class ErrorKind(str, Enum):
    """Failure classification attached to a failed ``Outcome``."""

    TIMEOUT = "timeout"
    SERVICE_UNAVAILABLE = "service_unavailable"
    VALIDATION_REJECTED = "validation_rejected"
    INVALID_INPUT = "invalid_input"
    UNKNOWN_AGENT_TYPE = "unknown_agent_type"
    CANCELLED = "cancelled"


TRANSIENT_KINDS = frozenset({ErrorKind.TIMEOUT, ErrorKind.SERVICE_UNAVAILABLE})
NON_RETRYABLE_KINDS = frozenset(
    {ErrorKind.INVALID_INPUT, ErrorKind.UNKNOWN_AGENT_TYPE, ErrorKind.CANCELLED}
)


class OrchestrationError(Exception):
    """Base exception for orchestration errors."""

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class ConfigurationError(OrchestrationError):
    """Fatal setup problem: surfaced immediately, never retried."""
    pass


class InvalidPlan(ConfigurationError):
    """Plan graph is malformed (cycle, dangling reference, unknown agent)."""

    def __init__(self, message: str, problems: Optional[Iterable[str]] = None):
        self.problems = list(problems or [])
        super().__init__(message, user_message=f"无法生成执行计划：{message}")


class UnknownAgentType(ConfigurationError):
    """No worker is registered for the requested agent type."""

    def __init__(self, agent_type: str):
        self.agent_type = agent_type
        super().__init__(
            f"No worker registered for agent type: {agent_type}",
            user_message=f"未配置 {agent_type} 类型的 agent，请联系管理员。",
        )


class WorkerError(OrchestrationError):
    """Raised by a worker to report a classified failure."""

    kind: ErrorKind = ErrorKind.SERVICE_UNAVAILABLE


class TransientWorkerError(WorkerError):
    """Temporary worker failure; retried, then reassigned."""

    kind = ErrorKind.SERVICE_UNAVAILABLE


class ServiceUnavailable(TransientWorkerError):
    """Upstream capability provider is unreachable or overloaded."""
    pass


class WorkerTimeout(TransientWorkerError):
    """Worker gave up waiting on its own upstream call."""

    kind = ErrorKind.TIMEOUT


class NonRetryableInputError(WorkerError):
    """Task input is malformed; fatal for the step only."""

    kind = ErrorKind.INVALID_INPUT


def classify_worker_error(error: BaseException) -> ErrorKind:
    """Map an arbitrary worker exception to an ``ErrorKind``.

    Args:
        error: Exception raised by a capability call

    Returns:
        Best-effort error kind; unrecognised errors count as service
        unavailability so they stay eligible for retry.
    """
    if isinstance(error, WorkerError):
        return error.kind
    if isinstance(error, TimeoutError):
        return ErrorKind.TIMEOUT

    error_str = str(error).lower()

    if "timeout" in error_str or "timed out" in error_str:
        return ErrorKind.TIMEOUT

    if "invalid_request_error" in error_str:
        return ErrorKind.INVALID_INPUT

    # rate limits, 5xx, connection resets, quota: all worth another attempt
    return ErrorKind.SERVICE_UNAVAILABLE


__all__ = [
    "ErrorKind",
    "TRANSIENT_KINDS",
    "NON_RETRYABLE_KINDS",
    "OrchestrationError",
    "ConfigurationError",
    "InvalidPlan",
    "UnknownAgentType",
    "WorkerError",
    "TransientWorkerError",
    "ServiceUnavailable",
    "WorkerTimeout",
    "NonRetryableInputError",
    "classify_worker_error",
]
