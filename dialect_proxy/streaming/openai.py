"""OpenAI Chat Completions SSE -> Anthropic Messages SSE.

OpenAI Chat Completion Events:
    data: {"choices":[{"delta":{"role":"assistant"},"index":0}]}
    data: {"choices":[{"delta":{"content":"Hello"},"index":0}]}
    data: {"choices":[{"delta":{"tool_calls":[...]},"index":0}]}
    data: {"choices":[{"delta":{},"finish_reason":"stop","index":0}]}
    data: {"choices":[],"usage":{"prompt_tokens":9,"completion_tokens":12}}
    data: [DONE]

Tool call arguments are streamed as they arrive. The finish reason is held
until the body ends, since usage comes in a trailing frame of its own.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Iterator, Optional

from .adapter import MessagesStreamAdapter
from .session import ToolCallState

logger = logging.getLogger("dialect-proxy")

_STOP_REASONS = {
    "stop": "end_turn",
    "length": "max_tokens",
    "tool_calls": "tool_use",
    "function_call": "tool_use",
    "content_filter": "refusal",
}


def convert_finish_reason(finish_reason: Optional[str]) -> str:
    """Convert OpenAI finish_reason to Anthropic stop_reason.

    OpenAI: stop, length, tool_calls, content_filter, function_call
    Anthropic: end_turn, max_tokens, stop_sequence, tool_use, refusal
    """
    if finish_reason is None:
        return "end_turn"
    return _STOP_REASONS.get(finish_reason, "end_turn")


class OpenAIStreamAdapter(MessagesStreamAdapter):
    """Re-emits an OpenAI chat completion stream as Anthropic Messages events."""

    provider = "OpenAI"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        # OpenAI tool_call index -> our tool call
        self._calls_by_ordinal: dict[int, ToolCallState] = {}
        self.finish_reason: Optional[str] = None

    def _process_frame(self, frame: dict[str, Any]) -> Iterator[bytes]:
        for choice in frame.get("choices") or []:
            if not isinstance(choice, dict):
                continue
            delta = choice.get("delta") or {}

            content = delta.get("content")
            if content:
                yield from self._close_open_tool_blocks()
                yield from self._text_delta(content)

            for tc in delta.get("tool_calls") or []:
                yield from self._process_tool_call_delta(tc)

            if choice.get("finish_reason"):
                self.finish_reason = choice["finish_reason"]

        usage = frame.get("usage")
        if usage:
            self._update_usage(usage.get("prompt_tokens"), usage.get("completion_tokens"))

    def _process_tool_call_delta(self, tc: dict[str, Any]) -> Iterator[bytes]:
        ordinal = tc.get("index", 0)
        function = tc.get("function") or {}

        call = self._calls_by_ordinal.get(ordinal)
        if call is None:
            # A new call ends whatever block was streaming before it
            yield from self._close_text_block()
            yield from self._close_open_tool_blocks()

            tool_id = tc.get("id") or f"toolu_{uuid.uuid4().hex[:12]}"
            call, start = self._open_tool_block(tool_id, function.get("name") or "")
            self._calls_by_ordinal[ordinal] = call
            yield start
        elif function.get("name"):
            call.name = function["name"]

        arguments = function.get("arguments")
        if not arguments:
            return
        if not call.open:
            logger.warning(f"[{self.session.message_id}] Dropping arguments for closed tool call {call.id}")
            return
        yield self._tool_arguments_delta(call, arguments)

    def _close_open_tool_blocks(self) -> Iterator[bytes]:
        for call in self._calls_by_ordinal.values():
            yield from self._close_tool_block(call)

    def _finish(self) -> Iterator[bytes]:
        yield from self._finalize(convert_finish_reason(self.finish_reason))
