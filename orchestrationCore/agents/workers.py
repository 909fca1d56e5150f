"""Generic worker adapters.

- FunctionWorker: wraps a plain async callable
- RunnableWorker: wraps a LangChain runnable (prompt | model | parser) and
  streams its chunks as partial payloads
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

from langchain_core.runnables import Runnable

from .schema import Outcome, PartialPayload, StepTask

if TYPE_CHECKING:
    from orchestrationCore.runtime.context import ConversationContext

LOGGER = logging.getLogger(__name__)

InputBuilder = Callable[[StepTask, "ConversationContext"], Dict[str, Any]]


class FunctionWorker:
    """Adapts ``async def fn(task, context)`` to the worker contract.

    The callable may return an ``Outcome`` or a bare payload (wrapped as a
    successful Outcome). Exceptions propagate to the registry, which turns
    them into failed Outcomes.
    """

    def __init__(self, name: str, func: Callable[[StepTask, "ConversationContext"], Awaitable[Any]]):
        self.name = name
        self._func = func

    async def execute(self, task: StepTask, context: ConversationContext) -> Outcome:
        result = await self._func(task, context)
        if isinstance(result, Outcome):
            return result
        return Outcome.ok(result)

    def __repr__(self) -> str:
        return f"FunctionWorker({self.name!r})"


def default_input_builder(task: StepTask, context: ConversationContext) -> Dict[str, Any]:
    """Prompt variables shared by the built-in LLM workers."""
    return {
        "request": json.dumps(dict(task.input), ensure_ascii=False, default=str),
        "upstream": json.dumps(dict(task.upstream), ensure_ascii=False, default=str),
        "language": context.language,
        "history": list(context.recent(20)),
    }


class RunnableWorker:
    """Worker backed by a LangChain ``Runnable``.

    ``execute`` awaits ``ainvoke``; ``stream`` forwards every ``astream``
    chunk as a PartialPayload and ends with the merged final Outcome.
    """

    def __init__(
        self,
        name: str,
        runnable: Runnable,
        input_builder: Optional[InputBuilder] = None,
    ) -> None:
        self.name = name
        self.runnable = runnable
        self.input_builder = input_builder or default_input_builder

    async def execute(self, task: StepTask, context: ConversationContext) -> Outcome:
        payload = await self.runnable.ainvoke(self.input_builder(task, context))
        return Outcome.ok(payload)

    async def stream(
        self, task: StepTask, context: ConversationContext
    ) -> AsyncIterator[Union[PartialPayload, Outcome]]:
        chunks: List[Any] = []
        async for chunk in self.runnable.astream(self.input_builder(task, context)):
            chunks.append(chunk)
            yield PartialPayload(chunk)
        LOGGER.debug(f"{self.name} streamed {len(chunks)} chunks for step {task.step_id}")
        yield Outcome.ok(merge_chunks(chunks))

    def __repr__(self) -> str:
        return f"RunnableWorker({self.name!r})"


def merge_chunks(chunks: List[Any]) -> Any:
    """Combine streamed chunks into the final payload.

    Text parsers stream deltas (concatenate); JSON parsers stream
    progressively completed objects (the last one wins).
    """
    if not chunks:
        return None
    if all(isinstance(chunk, str) for chunk in chunks):
        return "".join(chunks)
    return chunks[-1]


__all__ = ["FunctionWorker", "RunnableWorker", "default_input_builder", "merge_chunks"]
