"""Validator - acceptance gate between a worker's outcome and its consumers."""

from __future__ import annotations

import ast
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from orchestrationCore.agents.registry import CapabilityRegistry
from orchestrationCore.agents.schema import AgentType, Outcome, agent_key
from orchestrationCore.planning.schema import PlanStep
from orchestrationCore.utils.errors import UnknownAgentType

LOGGER = logging.getLogger(__name__)

# Returns a rejection reason, or None when the payload is acceptable
StructuralCheck = Callable[[PlanStep, Any], Optional[str]]


@dataclass(frozen=True, slots=True)
class Verdict:
    accepted: bool
    reason: str = ""

    @classmethod
    def accept(cls) -> "Verdict":
        return cls(accepted=True)

    @classmethod
    def reject(cls, reason: str) -> "Verdict":
        return cls(accepted=False, reason=reason)


def is_empty(payload: Any) -> bool:
    if payload is None:
        return True
    if isinstance(payload, str):
        return not payload.strip()
    if isinstance(payload, (dict, list, tuple, set)):
        return not payload
    return False


def check_code_parses(step: PlanStep, payload: Any) -> Optional[str]:
    """Coder payload: ``{"files": [{"path", "language", "content"}]}``.

    Python files must parse, JSON files must load; other languages only
    need non-empty content.
    """
    files = payload.get("files") if isinstance(payload, dict) else None
    if not files or not isinstance(files, list):
        return "coder payload has no files"

    for item in files:
        if not isinstance(item, dict) or not isinstance(item.get("content"), str):
            return f"malformed file entry: {str(item)[:80]}"
        path = str(item.get("path", "<unnamed>"))
        language = str(item.get("language", "")).lower()
        content = item["content"]
        if not content.strip():
            return f"{path} is empty"
        if language == "python" or path.endswith(".py"):
            try:
                ast.parse(content, filename=path)
            except SyntaxError as e:
                return f"{path} does not parse: {e.msg} (line {e.lineno})"
        elif language == "json" or path.endswith(".json"):
            try:
                json.loads(content)
            except json.JSONDecodeError as e:
                return f"{path} is not valid JSON: {e.msg}"
    return None


def make_architecture_check(required_categories: Iterable[str]) -> StructuralCheck:
    """Planner payload must cover every required component category."""
    required = {c.lower() for c in required_categories}

    def check_architecture(step: PlanStep, payload: Any) -> Optional[str]:
        architecture = payload.get("architecture") if isinstance(payload, dict) else None
        components = architecture.get("components") if isinstance(architecture, dict) else None
        if not components or not isinstance(components, list):
            return "planner payload has no architecture components"
        present = {
            str(c.get("category", "")).lower()
            for c in components
            if isinstance(c, dict)
        }
        missing = sorted(required - present)
        if missing:
            return f"architecture is missing component categories: {', '.join(missing)}"
        return None

    return check_architecture


class Validator:
    """Per-step acceptance checks.

    Checks, in order:
    1. outcome.success
    2. non-empty payload for generative agent types
    3. structural check registered for the step's agent type
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        required_categories: Iterable[str] = ("frontend", "backend"),
    ) -> None:
        self.registry = registry
        self._checks: Dict[str, StructuralCheck] = {
            AgentType.CODER.value: check_code_parses,
            AgentType.PLANNER.value: make_architecture_check(required_categories),
        }

    @classmethod
    def from_settings(cls, registry: CapabilityRegistry, settings) -> "Validator":
        return cls(registry, required_categories=settings.required_architecture_categories)

    def register_check(self, agent_type: str | AgentType, check: Optional[StructuralCheck]) -> None:
        """Install (or, with None, remove) the structural check for an agent type."""
        key = agent_key(agent_type)
        if check is None:
            self._checks.pop(key, None)
        else:
            self._checks[key] = check

    def _is_generative(self, agent_type: str) -> bool:
        try:
            return self.registry.descriptor(agent_type).generative
        except UnknownAgentType:
            return True

    def validate(self, step: PlanStep, outcome: Outcome) -> Verdict:
        if not outcome.success:
            kind = outcome.error.value if outcome.error else "unknown"
            return Verdict.reject(f"execution failed: {kind}")

        if self._is_generative(step.agent_type) and is_empty(outcome.payload):
            return Verdict.reject("empty payload from generative step")

        check = self._checks.get(step.agent_type)
        if check is None:
            return Verdict.accept()

        try:
            reason = check(step, outcome.payload)
        except Exception as e:
            LOGGER.exception(f"Structural check for {step.agent_type} crashed", exc_info=e)
            reason = f"structural check crashed: {type(e).__name__}: {e}"

        return Verdict.reject(reason) if reason else Verdict.accept()


__all__ = ["Verdict", "Validator", "StructuralCheck", "check_code_parses", "make_architecture_check", "is_empty"]
