"""Capability providers and their registry."""

from .schema import AgentDescriptor, AgentType, Outcome, PartialPayload, StepTask, agent_key
from .interfaces import IntentClassifier, ModelResolver, StreamingWorker, Worker
from .registry import CapabilityRegistry
from .workers import FunctionWorker, RunnableWorker
from .scanner import scan_agents_from_config

__all__ = [
    "AgentDescriptor",
    "AgentType",
    "Outcome",
    "PartialPayload",
    "StepTask",
    "agent_key",
    "IntentClassifier",
    "ModelResolver",
    "StreamingWorker",
    "Worker",
    "CapabilityRegistry",
    "FunctionWorker",
    "RunnableWorker",
    "scan_agents_from_config",
]
