"""Execution Log - append-only audit trail of one plan.

Entries are never reordered or mutated; their order is the append order.
Readers can take snapshots (``entries``) or follow the log asynchronously
from any offset (``subscribe``) until it is closed. Streaming chunks from
workers go to a separate progress channel with the same semantics.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, AsyncIterator, Generic, List, Mapping, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class LogEvent(str, Enum):
    DISPATCHED = "dispatched"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RETRIED = "retried"
    REASSIGNED = "reassigned"
    VALIDATED = "validated"
    REJECTED = "rejected"
    ABORTED = "aborted"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class LogEntry:
    plan_id: str
    step_id: str
    event: LogEvent
    sequence: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    detail: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "plan_id": self.plan_id,
            "step_id": self.step_id,
            "event": self.event.value,
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat(),
            "detail": dict(self.detail),
        }


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    plan_id: str
    step_id: str
    sequence: int
    chunk: Any


class _AppendOnlyStream(Generic[T]):
    """List that only grows, with async followers."""

    def __init__(self) -> None:
        self._items: List[T] = []
        self._lock = threading.Lock()
        self._closed = False
        self._changed = asyncio.Event()

    def append(self, make_item) -> T:
        """Append ``make_item(sequence)`` atomically and wake followers."""
        with self._lock:
            if self._closed:
                raise RuntimeError("Cannot append to a closed log")
            item = make_item(len(self._items))
            self._items.append(item)
        self._notify()
        return item

    def snapshot(self, offset: int = 0) -> List[T]:
        with self._lock:
            return self._items[offset:]

    def __len__(self) -> int:
        return len(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True
        self._notify()

    def _notify(self) -> None:
        changed, self._changed = self._changed, asyncio.Event()
        changed.set()

    async def follow(self, offset: int = 0) -> AsyncIterator[T]:
        position = max(offset, 0)
        while True:
            waiter = self._changed
            items = self.snapshot(position)
            for item in items:
                yield item
            position += len(items)
            if self._closed and position >= len(self._items):
                return
            await waiter.wait()


class ExecutionLog:
    """Audit trail plus progress channel for a single plan."""

    def __init__(self, plan_id: str) -> None:
        self.plan_id = plan_id
        self._entries: _AppendOnlyStream[LogEntry] = _AppendOnlyStream()
        self._progress: _AppendOnlyStream[ProgressEvent] = _AppendOnlyStream()

    # ========== Audit entries ==========

    def append(self, step_id: str, event: LogEvent, **detail: Any) -> LogEntry:
        entry = self._entries.append(lambda seq: LogEntry(
            plan_id=self.plan_id,
            step_id=step_id,
            event=event,
            sequence=seq,
            detail=MappingProxyType(detail),
        ))
        LOGGER.debug(f"[{self.plan_id[:8]}] #{entry.sequence} {step_id} {event.value} {detail or ''}")
        return entry

    def entries(self, offset: int = 0) -> List[LogEntry]:
        return self._entries.snapshot(offset)

    def for_step(self, step_id: str) -> List[LogEntry]:
        return [entry for entry in self._entries.snapshot() if entry.step_id == step_id]

    def count(self, step_id: str, event: LogEvent) -> int:
        return sum(1 for entry in self.for_step(step_id) if entry.event == event)

    def subscribe(self, offset: int = 0) -> AsyncIterator[LogEntry]:
        """Follow entries from ``offset``; ends once the log is closed."""
        return self._entries.follow(offset)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries.snapshot())

    # ========== Progress channel ==========

    def publish_progress(self, step_id: str, chunk: Any) -> ProgressEvent:
        return self._progress.append(lambda seq: ProgressEvent(
            plan_id=self.plan_id, step_id=step_id, sequence=seq, chunk=chunk,
        ))

    def progress(self, offset: int = 0) -> List[ProgressEvent]:
        return self._progress.snapshot(offset)

    def subscribe_progress(self, offset: int = 0) -> AsyncIterator[ProgressEvent]:
        return self._progress.follow(offset)

    # ========== Lifecycle ==========

    @property
    def closed(self) -> bool:
        return self._entries.closed

    def close(self) -> None:
        """Mark the plan's history complete; followers drain and stop."""
        self._entries.close()
        self._progress.close()


__all__ = ["LogEvent", "LogEntry", "ProgressEvent", "ExecutionLog"]
