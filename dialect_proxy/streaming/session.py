"""Per-stream state owned by a single adapter."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger("dialect-proxy")


class StreamState(str, Enum):
    AWAITING_FIRST_CHUNK = "awaiting_first_chunk"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    CLOSED = "closed"
    ERRORED = "errored"


@dataclass
class ToolCallState:
    """A tool_use block opened during the stream."""

    id: str
    name: str
    block_index: int
    arguments: str = ""
    input: Any = None
    open: bool = True


@dataclass
class StreamSession:
    """Mutable bookkeeping for one re-emitted message.

    Block indices come only from ``allocate_index`` so they start at 0,
    increase strictly and are never reused within the session.
    """

    message_id: str
    model: str
    state: StreamState = StreamState.AWAITING_FIRST_CHUNK
    next_index: int = 0
    text_index: Optional[int] = None
    accumulated_text: str = ""
    # block index -> tool call
    tool_calls: dict[int, ToolCallState] = field(default_factory=dict)
    usage: Optional[dict[str, int]] = None
    stop_reason: Optional[str] = None
    finalized: bool = False
    closed: bool = False

    @property
    def text_open(self) -> bool:
        return self.text_index is not None

    def allocate_index(self) -> int:
        index = self.next_index
        self.next_index += 1
        return index

    def transition(self, state: StreamState) -> None:
        if state is self.state:
            return
        logger.debug(f"[{self.message_id}] {self.state.value} -> {state.value}")
        self.state = state
