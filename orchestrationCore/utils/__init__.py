"""Shared utilities: error taxonomy and logging helpers."""

from .errors import (
    ConfigurationError,
    ErrorKind,
    InvalidPlan,
    NonRetryableInputError,
    OrchestrationError,
    ServiceUnavailable,
    TransientWorkerError,
    UnknownAgentType,
    WorkerError,
    WorkerTimeout,
    classify_worker_error,
)

__all__ = [
    "ConfigurationError",
    "ErrorKind",
    "InvalidPlan",
    "NonRetryableInputError",
    "OrchestrationError",
    "ServiceUnavailable",
    "TransientWorkerError",
    "UnknownAgentType",
    "WorkerError",
    "WorkerTimeout",
    "classify_worker_error",
]
