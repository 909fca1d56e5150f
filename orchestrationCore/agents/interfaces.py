"""Interfaces for capability providers and external collaborators."""

from __future__ import annotations

from typing import TYPE_CHECKING, AsyncIterator, Protocol, Union, runtime_checkable

from .schema import Outcome, PartialPayload, StepTask

if TYPE_CHECKING:
    from orchestrationCore.planning.schema import Intent
    from orchestrationCore.runtime.context import ConversationContext


@runtime_checkable
class Worker(Protocol):
    """Capability provider: one implementation of one agent type."""

    name: str

    async def execute(self, task: StepTask, context: ConversationContext) -> Outcome:
        ...


@runtime_checkable
class StreamingWorker(Worker, Protocol):
    """Worker that emits partial payloads terminated by a final Outcome."""

    def stream(
        self, task: StepTask, context: ConversationContext
    ) -> AsyncIterator[Union[PartialPayload, Outcome]]:
        ...


class IntentClassifier(Protocol):
    """External intent classification service."""

    async def classify(self, text: str, context: ConversationContext) -> Intent:
        ...


class ModelResolver(Protocol):
    """Callable that returns a LangChain-compatible model runnable."""

    def __call__(self, model_id: str):
        ...
