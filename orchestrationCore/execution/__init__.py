"""Plan execution: dispatcher, validation, recovery and the execution log."""

from .log import ExecutionLog, LogEntry, LogEvent, ProgressEvent
from .validator import StructuralCheck, Validator, Verdict
from .recovery import Action, Decision, FailureCoordinator
from .dispatcher import Dispatcher

__all__ = [
    "ExecutionLog",
    "LogEntry",
    "LogEvent",
    "ProgressEvent",
    "StructuralCheck",
    "Validator",
    "Verdict",
    "Action",
    "Decision",
    "FailureCoordinator",
    "Dispatcher",
]
