"""Pytest configuration and fixtures for all tests.

This file is automatically loaded by pytest and ensures proper test environment setup.
It also provides scripted workers so that no test ever talks to a real model.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, List, Optional

import pytest

# Ensure project root is in PYTHONPATH for imports to work
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from orchestrationCore.agents.registry import CapabilityRegistry
from orchestrationCore.agents.schema import AgentDescriptor, Outcome, PartialPayload, StepTask
from orchestrationCore.config.settings import RecoverySettings, Settings, ValidationSettings
from orchestrationCore.execution.dispatcher import Dispatcher
from orchestrationCore.execution.log import ExecutionLog
from orchestrationCore.execution.recovery import FailureCoordinator
from orchestrationCore.execution.validator import Validator
from orchestrationCore.runtime.context import ConversationContext


ARCHITECTURE_PAYLOAD = {
    "architecture": {
        "summary": "Todo app",
        "components": [
            {"name": "web", "category": "frontend", "responsibility": "UI"},
            {"name": "api", "category": "backend", "responsibility": "REST API"},
        ],
    }
}

CODE_PAYLOAD = {
    "files": [
        {"path": "app/main.py", "language": "python", "content": "def main():\n    return 42\n"},
        {"path": "package.json", "language": "json", "content": '{"name": "web"}'},
    ]
}

TUTOR_PAYLOAD = "A closure captures variables from its enclosing scope."

DEPLOYMENT_PAYLOAD = {"url": "https://todo.example.test"}

HANG = object()  # Script item: sleep until cancelled or timed out


class ScriptedWorker:
    """Worker that replays a script, one item per call.

    Script items:
    - Outcome: returned as-is
    - Exception instance: raised
    - callable(task): called, its result handled like any other item
    - HANG: sleeps until cancelled
    - anything else: returned as a successful payload
    """

    def __init__(self, name: str, script: Optional[List[Any]] = None, default: Any = None, delay: float = 0.0):
        self.name = name
        self.script = list(script or [])
        self.default = default
        self.delay = delay
        self.calls: List[StepTask] = []
        self.active = 0
        self.max_active = 0
        self.cancelled = 0

    async def execute(self, task: StepTask, context: ConversationContext) -> Outcome:
        self.calls.append(task)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            item = self.script.pop(0) if self.script else self.default
            if callable(item) and not isinstance(item, type):
                item = item(task)
            if item is HANG:
                await asyncio.sleep(3600)
            if isinstance(item, BaseException):
                raise item
            return item if isinstance(item, Outcome) else Outcome.ok(item)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.active -= 1


class ChunkingWorker:
    """Streaming worker emitting a few chunks before its final outcome."""

    def __init__(self, name: str, chunks: List[str], final: Any = None):
        self.name = name
        self.chunks = chunks
        self.final = final

    async def execute(self, task, context):
        return Outcome.ok(self.final)

    async def stream(self, task, context):
        for chunk in self.chunks:
            yield PartialPayload(chunk)
        if self.final is not None:
            yield Outcome.ok(self.final)


@pytest.fixture
def context():
    return ConversationContext(user_id="u-1", project_id="p-1")


@pytest.fixture
def recovery_settings():
    """Default policy without real backoff sleeps."""
    return RecoverySettings(max_retries=2, backoff_base=0.0, backoff_factor=2.0)


@pytest.fixture
def settings(recovery_settings):
    return Settings(
        recovery=recovery_settings,
        validation=ValidationSettings(required_architecture_categories=["frontend", "backend"]),
    )


@pytest.fixture
def workers():
    return {
        "planner": ScriptedWorker("planner-1", default=ARCHITECTURE_PAYLOAD),
        "coder": ScriptedWorker("coder-1", default=CODE_PAYLOAD),
        "tutor": ScriptedWorker("tutor-1", default=TUTOR_PAYLOAD),
        "deployment": ScriptedWorker("deploy-1", default=DEPLOYMENT_PAYLOAD),
    }


@pytest.fixture
def registry(workers):
    registry = CapabilityRegistry(default_timeout=5.0, default_max_concurrency=4)
    registry.register_agent(AgentDescriptor("deployment", max_concurrency=1, timeout=5.0, generative=False))
    for agent_type, worker in workers.items():
        registry.register(agent_type, worker)
    return registry


@pytest.fixture
def run_plan(registry, context, recovery_settings):
    """Run a plan to completion with a fresh log; returns (plan, log)."""

    async def _run(plan, validator=None, reg=None):
        reg = reg or registry
        log = ExecutionLog(plan.id)
        dispatcher = Dispatcher(
            plan,
            reg,
            context,
            validator=validator or Validator(reg),
            coordinator=FailureCoordinator.from_settings(reg, log, recovery_settings),
            log=log,
        )
        await dispatcher.run()
        return plan, log

    return _run
