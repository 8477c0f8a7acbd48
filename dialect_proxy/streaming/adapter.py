"""Base stream adapter: upstream SSE bytes in, Anthropic Messages SSE out.

Anthropic Messages events, in the order a session emits them:
    event: message_start
    event: content_block_start     (index 0, 1, ... never reused)
    event: content_block_delta
    event: content_block_stop
    event: message_delta           (exactly once)
    event: message_stop            (always last)

A failure while reading replaces the rest of that sequence with a single
``error`` event. Provider subclasses only decode frames; opening, closing and
finalizing blocks lives here.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Iterator, Optional

from ..core.sse import SSELineDecoder, extract_data_payload, format_sse_event
from ..usage_metrics import UsageLedger
from .session import StreamSession, StreamState, ToolCallState

logger = logging.getLogger("dialect-proxy")

# message_start goes out before any usage is known
PLACEHOLDER_USAGE = {"input_tokens": 100, "output_tokens": 1}


def _token_count(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring non-numeric token count: {value!r}")
        return 0


class MessagesStreamAdapter:
    """Drives one stream session through its state machine."""

    provider = "upstream"

    def __init__(
        self,
        message_id: str,
        model: str,
        *,
        ledger: Optional[UsageLedger] = None,
        context_window: Optional[int] = None,
    ):
        self.session = StreamSession(message_id=message_id, model=model)
        self.ledger = ledger
        self.context_window = context_window
        self._decoder = SSELineDecoder()

    # -------------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------------

    async def adapt_stream(self, upstream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Re-emit an upstream SSE byte stream as Anthropic Messages events.

        Args:
            upstream: Raw upstream body chunks, split at arbitrary points

        Yields:
            Anthropic Messages SSE events as bytes
        """
        session = self.session
        try:
            if not session.closed:
                yield self._emit_message_start()

            async for chunk in upstream:
                for line in self._decoder.feed(chunk):
                    for event in self._process_line(line):
                        if not session.closed:
                            yield event

            for line in self._decoder.flush():
                for event in self._process_line(line):
                    if not session.closed:
                        yield event

            for event in self._finish():
                if not session.closed:
                    yield event
            if not session.closed:
                yield self._event("message_stop", {"type": "message_stop"})
            session.closed = True
            session.transition(StreamState.CLOSED)
            self._record_usage()
        except Exception as exc:
            logger.error(f"[{self.provider}] Stream error: {exc}")
            if not session.closed:
                session.closed = True
                session.transition(StreamState.ERRORED)
                yield self._event(
                    "error",
                    {"type": "error", "error": {"type": "api_error", "message": str(exc)}},
                )

    def cancel(self) -> None:
        """Stop emitting events; the upstream read itself is not interrupted."""
        if not self.session.closed:
            logger.debug(f"[{self.session.message_id}] Stream cancelled by client")
        self.session.closed = True

    def _process_line(self, line: str) -> Iterator[bytes]:
        payload = extract_data_payload(line)
        if payload is None:
            return
        try:
            frame = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug(f"[{self.provider}] Chunk parse error: {payload[:100]}")
            return
        if not isinstance(frame, dict):
            logger.debug(f"[{self.provider}] Ignoring non-object frame: {payload[:100]}")
            return
        if self.session.state is StreamState.AWAITING_FIRST_CHUNK:
            self.session.transition(StreamState.STREAMING)
        try:
            yield from self._process_frame(frame)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.warning(f"[{self.provider}] Skipping malformed frame ({exc}): {payload[:100]}")

    # -------------------------------------------------------------------------
    # Provider hooks
    # -------------------------------------------------------------------------

    def _process_frame(self, frame: dict[str, Any]) -> Iterator[bytes]:
        raise NotImplementedError

    def _finish(self) -> Iterator[bytes]:
        """Called once the upstream body is exhausted."""
        yield from self._finalize("end_turn")

    # -------------------------------------------------------------------------
    # Block lifecycle
    # -------------------------------------------------------------------------

    def _open_text_block(self) -> Iterator[bytes]:
        session = self.session
        if session.text_open:
            return
        session.text_index = session.allocate_index()
        yield self._emit_content_block_start(session.text_index, {"type": "text", "text": ""})

    def _text_delta(self, text: str) -> Iterator[bytes]:
        yield from self._open_text_block()
        self.session.accumulated_text += text
        yield self._emit_content_block_delta(
            self.session.text_index, {"type": "text_delta", "text": text}
        )

    def _close_text_block(self) -> Iterator[bytes]:
        session = self.session
        if not session.text_open:
            return
        index = session.text_index
        session.text_index = None
        yield self._emit_content_block_stop(index)

    def _open_tool_block(self, tool_id: str, name: str) -> tuple[ToolCallState, bytes]:
        index = self.session.allocate_index()
        call = ToolCallState(id=tool_id, name=name, block_index=index)
        self.session.tool_calls[index] = call
        event = self._emit_content_block_start(
            index, {"type": "tool_use", "id": tool_id, "name": name, "input": {}}
        )
        return call, event

    def _tool_arguments_delta(self, call: ToolCallState, fragment: str) -> bytes:
        call.arguments += fragment
        return self._emit_content_block_delta(
            call.block_index, {"type": "input_json_delta", "partial_json": fragment}
        )

    def _close_tool_block(self, call: ToolCallState) -> Iterator[bytes]:
        if not call.open:
            return
        call.open = False
        if call.input is None:
            try:
                call.input = json.loads(call.arguments) if call.arguments else {}
            except json.JSONDecodeError:
                call.input = {"raw": call.arguments}
        yield self._emit_content_block_stop(call.block_index)

    def _update_usage(self, input_tokens: Any, output_tokens: Any) -> None:
        # Last frame wins; not cumulative within a stream
        self.session.usage = {
            "input_tokens": _token_count(input_tokens),
            "output_tokens": _token_count(output_tokens),
        }

    def _finalize(self, stop_reason: Optional[str]) -> Iterator[bytes]:
        """Close open blocks and emit the single ``message_delta``."""
        session = self.session
        if session.finalized:
            return
        session.finalized = True
        session.stop_reason = stop_reason
        session.transition(StreamState.FINALIZING)

        yield from self._close_text_block()
        for index in sorted(session.tool_calls):
            yield from self._close_tool_block(session.tool_calls[index])

        yield self._event(
            "message_delta",
            {
                "type": "message_delta",
                "delta": {"stop_reason": stop_reason, "stop_sequence": None},
                "usage": dict(session.usage) if session.usage else {"output_tokens": 0},
            },
        )

    def _record_usage(self) -> None:
        usage = self.session.usage
        if self.ledger is None or not usage:
            return
        self.ledger.record(
            usage["input_tokens"],
            usage["output_tokens"],
            context_window=self.context_window,
        )

    # -------------------------------------------------------------------------
    # Event formatting
    # -------------------------------------------------------------------------

    def _emit_message_start(self) -> bytes:
        message = {
            "id": self.session.message_id,
            "type": "message",
            "role": "assistant",
            "content": [],
            "model": self.session.model,
            "stop_reason": None,
            "stop_sequence": None,
            "usage": dict(PLACEHOLDER_USAGE),
        }
        return self._event("message_start", {"type": "message_start", "message": message})

    def _emit_content_block_start(self, index: int, content_block: dict[str, Any]) -> bytes:
        return self._event(
            "content_block_start",
            {"type": "content_block_start", "index": index, "content_block": content_block},
        )

    def _emit_content_block_delta(self, index: int, delta: dict[str, Any]) -> bytes:
        return self._event(
            "content_block_delta",
            {"type": "content_block_delta", "index": index, "delta": delta},
        )

    def _emit_content_block_stop(self, index: int) -> bytes:
        return self._event("content_block_stop", {"type": "content_block_stop", "index": index})

    def _event(self, event_type: str, data: dict[str, Any]) -> bytes:
        return format_sse_event(event_type, data)
