"""Capability Registry - agent type → worker candidates.

Registration happens once at startup; afterwards the registry is only read
(``resolve`` / ``descriptor``) and used to ``invoke`` workers under their
agent type's deadline and admission limit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from orchestrationCore.utils.errors import (
    ErrorKind,
    UnknownAgentType,
    WorkerError,
    classify_worker_error,
)

from .interfaces import StreamingWorker, Worker
from .schema import AgentDescriptor, AgentType, Outcome, PartialPayload, StepTask, agent_key

if TYPE_CHECKING:
    from orchestrationCore.config.settings import DispatchSettings
    from orchestrationCore.runtime.context import ConversationContext

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[Any], None]


def worker_name(worker: Any) -> str:
    return getattr(worker, "name", None) or type(worker).__name__


class CapabilityRegistry:
    """Maps agent types to ordered worker candidates.

    - _descriptors: one AgentDescriptor per agent type
    - _workers: candidates per agent type (first = primary, rest = fallbacks)
    - _admission: per agent type semaphore enforcing max_concurrency
    """

    def __init__(self, default_timeout: float = 60.0, default_max_concurrency: int = 4) -> None:
        self.default_timeout = default_timeout
        self.default_max_concurrency = default_max_concurrency
        self._descriptors: Dict[str, AgentDescriptor] = {}
        self._workers: Dict[str, List[Worker]] = {}
        self._admission: Dict[str, asyncio.Semaphore] = {}

    @classmethod
    def from_settings(cls, settings: DispatchSettings) -> "CapabilityRegistry":
        return cls(
            default_timeout=settings.step_timeout,
            default_max_concurrency=settings.max_concurrency,
        )

    # ========== Registration ==========

    def register_agent(self, descriptor: AgentDescriptor) -> None:
        """Declare (or redeclare) the descriptor of an agent type."""
        key = agent_key(descriptor.agent_type)
        self._descriptors[key] = descriptor
        self._workers.setdefault(key, [])
        self._admission.pop(key, None)  # rebuilt with the new limit on next use
        LOGGER.debug(
            f"Registered agent type: {key} "
            f"(timeout={descriptor.timeout}s, max_concurrency={descriptor.max_concurrency})"
        )

    def register(
        self,
        agent_type: str | AgentType,
        worker: Worker,
        descriptor: Optional[AgentDescriptor] = None,
    ) -> None:
        """Add a worker candidate for an agent type.

        Args:
            agent_type: Registry key
            worker: Object implementing ``execute(task, context)``
            descriptor: Descriptor to use if the type is not declared yet;
                defaults are taken from the registry otherwise
        """
        key = agent_key(agent_type)
        if not callable(getattr(worker, "execute", None)):
            raise TypeError(f"Worker {worker!r} does not implement execute(task, context)")

        if key not in self._descriptors:
            self.register_agent(descriptor or AgentDescriptor(
                agent_type=key,
                max_concurrency=self.default_max_concurrency,
                timeout=self.default_timeout,
            ))
        self._workers[key].append(worker)
        LOGGER.info(f"Registered worker {worker_name(worker)} for {key} (candidate #{len(self._workers[key])})")

    # ========== Queries ==========

    def resolve(self, agent_type: str | AgentType) -> List[Worker]:
        """Return worker candidates, primary first.

        Raises:
            UnknownAgentType: No worker registered for the type
        """
        key = agent_key(agent_type)
        workers = self._workers.get(key)
        if not workers:
            raise UnknownAgentType(key)
        return list(workers)

    def descriptor(self, agent_type: str | AgentType) -> AgentDescriptor:
        key = agent_key(agent_type)
        if key not in self._descriptors:
            raise UnknownAgentType(key)
        return self._descriptors[key]

    def is_registered(self, agent_type: str | AgentType) -> bool:
        """True if at least one worker is registered for the type."""
        return bool(self._workers.get(agent_key(agent_type)))

    def agent_types(self) -> List[str]:
        return [key for key, workers in self._workers.items() if workers]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "agent_types": len(self.agent_types()),
            "workers": {key: [worker_name(w) for w in workers] for key, workers in self._workers.items()},
        }

    # ========== Invocation ==========

    def _semaphore(self, key: str) -> asyncio.Semaphore:
        if key not in self._admission:
            self._admission[key] = asyncio.Semaphore(self._descriptors[key].max_concurrency)
        return self._admission[key]

    async def invoke(
        self,
        worker: Worker,
        task: StepTask,
        context: ConversationContext,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Outcome:
        """Run one capability call under its deadline and admission limit.

        Waits for a free admission slot first; the deadline only starts once
        admitted. Never raises for worker failures: timeouts and exceptions
        become failed Outcomes. ``asyncio.CancelledError`` propagates.
        """
        try:
            descriptor = self.descriptor(task.agent_type)
        except UnknownAgentType as e:
            return Outcome.fail(ErrorKind.UNKNOWN_AGENT_TYPE, str(e))

        name = worker_name(worker)
        async with self._semaphore(descriptor.agent_type):
            try:
                return await asyncio.wait_for(
                    self._call(worker, task, context, on_progress),
                    timeout=descriptor.timeout,
                )
            except asyncio.TimeoutError:
                LOGGER.warning(f"Worker {name} timed out after {descriptor.timeout}s on step {task.step_id}")
                return Outcome.fail(ErrorKind.TIMEOUT, f"{name} exceeded {descriptor.timeout}s deadline")
            except WorkerError as e:
                LOGGER.warning(f"Worker {name} failed on step {task.step_id}: {e.kind.value}: {e}")
                return Outcome.fail(e.kind, str(e))
            except Exception as e:
                LOGGER.exception(f"Worker {name} raised on step {task.step_id}", exc_info=e)
                return Outcome.fail(classify_worker_error(e), f"{type(e).__name__}: {e}")

    async def _call(
        self,
        worker: Worker,
        task: StepTask,
        context: ConversationContext,
        on_progress: Optional[ProgressCallback],
    ) -> Outcome:
        if not isinstance(worker, StreamingWorker):
            return _as_outcome(await worker.execute(task, context))

        stream = worker.stream(task, context)
        try:
            async for item in stream:
                if isinstance(item, Outcome):
                    return _as_outcome(item)
                if on_progress is not None:
                    on_progress(item.chunk if isinstance(item, PartialPayload) else item)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return Outcome.fail(
            ErrorKind.SERVICE_UNAVAILABLE,
            f"{worker_name(worker)} stream ended without a final outcome",
        )


def _as_outcome(result: Any) -> Outcome:
    if isinstance(result, Outcome):
        if not result.success and result.error is None:
            # Unclassified failure from the worker itself
            return Outcome.fail(ErrorKind.SERVICE_UNAVAILABLE, result.detail)
        return result
    return Outcome.ok(result)


__all__ = ["CapabilityRegistry", "worker_name"]
