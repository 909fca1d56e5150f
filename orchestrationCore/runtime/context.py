"""Conversation context shared read-only by every step of a plan."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Optional, Sequence, Tuple

from langchain_core.messages import BaseMessage


@dataclass(frozen=True)
class ConversationContext:
    """Immutable conversation snapshot.

    Only the Supervisor produces new contexts (``with_message``); plans get a
    deep-copied ``snapshot()`` at build time and never see later changes.
    """

    user_id: str
    project_id: Optional[str] = None
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    language: str = "en"
    history: Tuple[BaseMessage, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "history", tuple(self.history))

    def with_message(self, message: BaseMessage) -> "ConversationContext":
        """Return a new context with ``message`` appended to the history."""
        return replace(self, history=self.history + (message,))

    def snapshot(self) -> "ConversationContext":
        """Copy-on-build snapshot handed to a plan."""
        return replace(self, history=tuple(m.model_copy(deep=True) for m in self.history))

    def recent(self, limit: int) -> Sequence[BaseMessage]:
        """Return the last ``limit`` messages (all when ``limit`` <= 0)."""
        if limit <= 0:
            return self.history
        return self.history[-limit:]


__all__ = ["ConversationContext"]
