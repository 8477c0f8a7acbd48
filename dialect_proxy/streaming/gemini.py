"""Gemini ``streamGenerateContent?alt=sse`` frames -> Anthropic Messages SSE.

Gemini streaming frame:
    data: {"candidates":[{"content":{"parts":[{"text":"..."}]},"finishReason":"STOP"}],
           "usageMetadata":{"promptTokenCount":10,"candidatesTokenCount":2}}

Function calls arrive whole, so each one is emitted as a self-closing
tool_use block (start, one input_json_delta with the full arguments, stop).
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Iterator, Optional

from ..types import GeminiStreamChunk, embed_thought_signature
from .adapter import MessagesStreamAdapter

logger = logging.getLogger("dialect-proxy")

_STOP_REASONS = {
    "STOP": "end_turn",
    "MAX_TOKENS": "max_tokens",
}


def convert_finish_reason(finish_reason: Optional[str]) -> Optional[str]:
    """Gemini finishReason -> Anthropic stop_reason (unmapped reasons give None)."""
    return _STOP_REASONS.get(finish_reason or "")


def generate_tool_id(thought_signature: Optional[str] = None) -> str:
    tool_id = f"toolu_{uuid.uuid4().hex[:24]}"
    if thought_signature:
        return embed_thought_signature(tool_id, thought_signature)
    return tool_id


class GeminiStreamAdapter(MessagesStreamAdapter):
    """Re-emits a Gemini SSE stream as Anthropic Messages events."""

    provider = "Gemini"

    def _process_frame(self, frame: GeminiStreamChunk) -> Iterator[bytes]:
        session = self.session
        candidates = frame.get("candidates")
        candidate: dict[str, Any] = {}
        if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
            candidate = candidates[0]

        if candidate and not session.finalized:
            content = candidate.get("content")
            parts = content.get("parts") if isinstance(content, dict) else None
            if content is not None and not isinstance(parts, list):
                logger.debug(f"[{session.message_id}] Candidate content has no parts list")
            for part in parts if isinstance(parts, list) else []:
                if not isinstance(part, dict):
                    continue
                if part.get("text") and isinstance(part["text"], str):
                    yield from self._text_delta(part["text"])
                if isinstance(part.get("functionCall"), dict):
                    yield from self._function_call(part)
        elif candidate:
            logger.debug(f"[{session.message_id}] Ignoring content after finish")

        usage = frame.get("usageMetadata")
        if isinstance(usage, dict):
            self._update_usage(usage.get("promptTokenCount"), usage.get("candidatesTokenCount"))

        finish_reason = candidate.get("finishReason")
        if finish_reason and not session.finalized:
            yield from self._finalize(convert_finish_reason(finish_reason))

    def _function_call(self, part: dict[str, Any]) -> Iterator[bytes]:
        function_call = part["functionCall"]
        name = function_call.get("name") or ""
        args = function_call.get("args")
        if args is None:
            args = {}

        call, start = self._open_tool_block(generate_tool_id(part.get("thoughtSignature")), name)
        call.input = args
        yield start
        yield self._tool_arguments_delta(
            call, json.dumps(args, ensure_ascii=False, separators=(",", ":"))
        )
        yield from self._close_tool_block(call)
