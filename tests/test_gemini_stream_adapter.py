"""Tests for GeminiStreamAdapter."""

import json

import pytest

from conftest import aiter_chunks, collect
from dialect_proxy.streaming import GeminiStreamAdapter, StreamState
from dialect_proxy.testing import (
    assert_anthropic_sse_valid,
    event_names,
    gemini_function_call_frame,
    gemini_text_frame,
    parse_sse_events,
)
from dialect_proxy.types import extract_thought_signature
from dialect_proxy.usage_metrics import UsageLedger


def _sse(*frames) -> bytes:
    return b"".join(f"data: {json.dumps(frame)}\r\n\r\n".encode("utf-8") for frame in frames)


async def _run(adapter, chunks):
    return parse_sse_events(await collect(adapter.adapt_stream(aiter_chunks(chunks))))


class TestGeminiStreamAdapter:
    """Tests for re-emitting Gemini frames."""

    @pytest.mark.asyncio
    async def test_text_stream_exact_sequence(self):
        """Two text frames with finish reason and usage."""
        adapter = GeminiStreamAdapter("msg_1", "gemini-2.5-flash")
        frames = [
            {"candidates": [{"content": {"parts": [{"text": "Hi"}]}}]},
            {
                "candidates": [{"content": {"parts": [{"text": " there"}]}, "finishReason": "STOP"}],
                "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 2},
            },
        ]
        events = await _run(adapter, [_sse(*frames)])

        assert event_names(events) == [
            "message_start",
            "content_block_start",
            "content_block_delta",
            "content_block_delta",
            "content_block_stop",
            "message_delta",
            "message_stop",
        ]
        start = events[0]["data"]["message"]
        assert start["id"] == "msg_1"
        assert start["model"] == "gemini-2.5-flash"
        assert start["content"] == []
        assert start["usage"] == {"input_tokens": 100, "output_tokens": 1}

        assert events[1]["data"] == {
            "type": "content_block_start",
            "index": 0,
            "content_block": {"type": "text", "text": ""},
        }
        assert events[2]["data"]["delta"] == {"type": "text_delta", "text": "Hi"}
        assert events[3]["data"]["delta"] == {"type": "text_delta", "text": " there"}
        assert events[4]["data"] == {"type": "content_block_stop", "index": 0}
        assert events[5]["data"] == {
            "type": "message_delta",
            "delta": {"stop_reason": "end_turn", "stop_sequence": None},
            "usage": {"input_tokens": 10, "output_tokens": 2},
        }
        assert events[6]["data"] == {"type": "message_stop"}
        assert adapter.session.accumulated_text == "Hi there"
        assert adapter.session.state is StreamState.CLOSED

    @pytest.mark.asyncio
    async def test_function_call_is_one_self_closing_block(self):
        adapter = GeminiStreamAdapter("msg_1", "m")
        events = await _run(adapter, [_sse({"candidates": [{"content": {"parts": [{"functionCall": {"name": "f", "args": {"a": 1}}}]}}]})])

        assert event_names(events)[1:4] == ["content_block_start", "content_block_delta", "content_block_stop"]
        block = events[1]["data"]["content_block"]
        assert block["type"] == "tool_use"
        assert block["name"] == "f"
        assert block["id"].startswith("toolu_")
        assert events[2]["data"]["delta"] == {"type": "input_json_delta", "partial_json": '{"a":1}'}
        assert {events[i]["data"]["index"] for i in (1, 2, 3)} == {0}
        assert adapter.session.tool_calls[0].input == {"a": 1}

    @pytest.mark.asyncio
    async def test_indices_strictly_increase(self):
        adapter = GeminiStreamAdapter("msg_1", "m")
        frames = [
            gemini_text_frame("Let me check."),
            gemini_function_call_frame("a", {"x": 1}),
            gemini_function_call_frame("b", {}),
            gemini_text_frame(" Done.", finish_reason="STOP", usage=(5, 3)),
        ]
        events = await _run(adapter, [_sse(*frames)])

        assert_anthropic_sse_valid(events)
        starts = [e["data"]["index"] for e in events if e["event"] == "content_block_start"]
        assert starts == [0, 1, 2]
        text_deltas = [e for e in events if e["data"].get("delta", {}).get("type") == "text_delta"]
        assert {e["data"]["index"] for e in text_deltas} == {0}

    @pytest.mark.asyncio
    async def test_thought_signature_is_embedded_in_tool_id(self):
        adapter = GeminiStreamAdapter("msg_1", "m")
        frame = gemini_function_call_frame("f", {}, thought_signature="c2lnbmF0dXJl+/=")
        events = await _run(adapter, [_sse(frame)])
        tool_id = events[1]["data"]["content_block"]["id"]
        assert "__ts_" in tool_id
        assert extract_thought_signature(tool_id) == "c2lnbmF0dXJl+/="

    @pytest.mark.asyncio
    async def test_frames_split_across_reads(self):
        adapter = GeminiStreamAdapter("msg_1", "m")
        raw = _sse(gemini_text_frame("héllo", finish_reason="STOP"))
        chunks = [raw[i:i + 3] for i in range(0, len(raw), 3)]
        events = await _run(adapter, chunks)
        deltas = [e["data"]["delta"]["text"] for e in events if e["event"] == "content_block_delta"]
        assert deltas == ["héllo"]

    @pytest.mark.asyncio
    async def test_trailing_line_without_newline_is_processed(self):
        adapter = GeminiStreamAdapter("msg_1", "m")
        raw = f"data: {json.dumps(gemini_text_frame('end', finish_reason='STOP'))}".encode("utf-8")
        events = await _run(adapter, [raw])
        assert any(e["event"] == "content_block_delta" for e in events)
        assert events[-2]["data"]["delta"]["stop_reason"] == "end_turn"

    @pytest.mark.asyncio
    async def test_comments_done_and_malformed_frames_are_skipped(self):
        adapter = GeminiStreamAdapter("msg_1", "m")
        chunks = [
            b": keep-alive\n\n",
            b"data: {not json\n\n",
            b"data: [1, 2]\n\n",
            _sse(gemini_text_frame("ok", finish_reason="STOP")),
            b"data: [DONE]\n\n",
        ]
        events = await _run(adapter, chunks)
        assert_anthropic_sse_valid(events)
        assert [e["data"]["delta"]["text"] for e in events if e["event"] == "content_block_delta"] == ["ok"]

    @pytest.mark.asyncio
    async def test_wrongly_shaped_frame_does_not_end_the_stream(self):
        adapter = GeminiStreamAdapter("msg_1", "m")
        frames = [
            gemini_text_frame("Hi"),
            {"candidates": [{"content": "oops"}]},
            gemini_text_frame(" there", finish_reason="STOP"),
        ]
        events = await _run(adapter, [_sse(*frames)])

        assert_anthropic_sse_valid(events)
        assert "error" not in event_names(events)
        deltas = [e["data"]["delta"]["text"] for e in events if e["event"] == "content_block_delta"]
        assert deltas == ["Hi", " there"]
        assert events[-2]["data"]["delta"]["stop_reason"] == "end_turn"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "frame",
        [
            {"candidates": {"0": {}}},
            {"candidates": [{"content": {"parts": "text"}}]},
            {"candidates": [{"content": {"parts": [{"text": 5}, {"functionCall": "f"}]}}]},
            {"candidates": [{"content": {"parts": []}, "finishReason": ["STOP"]}]},
            {"usageMetadata": "lots"},
            {"usageMetadata": {"promptTokenCount": "many", "candidatesTokenCount": [1]}},
        ],
    )
    async def test_malformed_frame_shapes_are_skipped(self, frame):
        adapter = GeminiStreamAdapter("msg_1", "m")
        events = await _run(adapter, [_sse(frame, gemini_text_frame("ok", finish_reason="STOP"))])

        assert_anthropic_sse_valid(events)
        assert adapter.session.state is StreamState.CLOSED
        assert [e["data"]["delta"]["text"] for e in events if e["event"] == "content_block_delta"] == ["ok"]

    @pytest.mark.asyncio
    async def test_non_numeric_token_counts_keep_the_finish_reason(self):
        adapter = GeminiStreamAdapter("msg_1", "m")
        frame = gemini_text_frame("x", finish_reason="MAX_TOKENS")
        frame["usageMetadata"] = {"promptTokenCount": "n/a", "candidatesTokenCount": 3}
        events = await _run(adapter, [_sse(frame)])

        assert events[-2]["data"]["delta"]["stop_reason"] == "max_tokens"
        assert events[-2]["data"]["usage"] == {"input_tokens": 0, "output_tokens": 3}

    @pytest.mark.asyncio
    async def test_stream_end_without_finish_reason(self):
        adapter = GeminiStreamAdapter("msg_1", "m")
        events = await _run(adapter, [_sse(gemini_text_frame("partial"))])
        assert event_names(events)[-3:] == ["content_block_stop", "message_delta", "message_stop"]
        assert events[-2]["data"]["delta"]["stop_reason"] == "end_turn"
        assert events[-2]["data"]["usage"] == {"output_tokens": 0}

    @pytest.mark.asyncio
    async def test_empty_stream_still_has_delta_and_stop(self):
        adapter = GeminiStreamAdapter("msg_1", "m")
        events = await _run(adapter, [])
        assert event_names(events) == ["message_start", "message_delta", "message_stop"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "finish_reason, stop_reason",
        [("STOP", "end_turn"), ("MAX_TOKENS", "max_tokens"), ("SAFETY", None), ("RECITATION", None)],
    )
    async def test_finish_reason_mapping(self, finish_reason, stop_reason):
        adapter = GeminiStreamAdapter("msg_1", "m")
        events = await _run(adapter, [_sse(gemini_text_frame("x", finish_reason=finish_reason))])
        assert events[-2]["data"]["delta"]["stop_reason"] == stop_reason

    @pytest.mark.asyncio
    async def test_frames_after_finish_emit_nothing(self):
        adapter = GeminiStreamAdapter("msg_1", "m")
        frames = [
            gemini_text_frame("a", finish_reason="STOP"),
            gemini_text_frame("b", finish_reason="STOP"),
            gemini_function_call_frame("f", {}, finish_reason="STOP"),
        ]
        events = await _run(adapter, [_sse(*frames)])
        names = event_names(events)
        assert names.count("message_delta") == 1
        assert names.count("content_block_stop") == 1
        assert names.count("content_block_delta") == 1
        assert names[-1] == "message_stop"

    @pytest.mark.asyncio
    async def test_usage_is_last_seen_within_a_stream(self):
        adapter = GeminiStreamAdapter("msg_1", "m")
        frames = [
            gemini_text_frame("a", usage=(10, 1)),
            gemini_text_frame("b", usage=(10, 4)),
            gemini_text_frame("", finish_reason="STOP", usage=(12, 6)),
        ]
        events = await _run(adapter, [_sse(*frames)])
        assert events[-2]["data"]["usage"] == {"input_tokens": 12, "output_tokens": 6}

    @pytest.mark.asyncio
    async def test_mid_stream_failure_emits_single_error_event(self):
        adapter = GeminiStreamAdapter("msg_1", "m")

        async def failing():
            yield _sse(gemini_text_frame("partial"))
            raise RuntimeError("connection reset")

        events = parse_sse_events(await collect(adapter.adapt_stream(failing())))
        assert event_names(events) == [
            "message_start",
            "content_block_start",
            "content_block_delta",
            "error",
        ]
        assert events[-1]["data"] == {
            "type": "error",
            "error": {"type": "api_error", "message": "connection reset"},
        }
        assert adapter.session.state is StreamState.ERRORED

    @pytest.mark.asyncio
    async def test_cancel_suppresses_further_events(self):
        adapter = GeminiStreamAdapter("msg_1", "m")
        stream = adapter.adapt_stream(aiter_chunks([_sse(gemini_text_frame("a")), _sse(gemini_text_frame("b"))]))
        first = await stream.__anext__()
        assert first.startswith(b"event: message_start")

        adapter.cancel()
        assert [event async for event in stream] == []


class TestLedgerIntegration:
    """Tests for reporting usage after a stream finishes."""

    @pytest.mark.asyncio
    async def test_usage_recorded_after_finish(self, tmp_path):
        ledger = UsageLedger(port=1, status_path=tmp_path / "t.json")
        for output in (2, 3):
            adapter = GeminiStreamAdapter("msg", "m", ledger=ledger, context_window=128000)
            await _run(adapter, [_sse(gemini_text_frame("x", finish_reason="STOP", usage=(10 + output, output)))])

        data = json.loads(ledger.status_path.read_text(encoding="utf-8"))
        assert data["input_tokens"] == 13
        assert data["output_tokens"] == 5
        assert data["context_window"] == 128000

    @pytest.mark.asyncio
    async def test_nothing_recorded_without_usage(self, tmp_path):
        ledger = UsageLedger(port=1, status_path=tmp_path / "t.json")
        await _run(GeminiStreamAdapter("msg", "m", ledger=ledger), [_sse(gemini_text_frame("x"))])
        assert ledger.output_tokens == 0

    @pytest.mark.asyncio
    async def test_nothing_recorded_on_error(self, tmp_path):
        ledger = UsageLedger(port=1, status_path=tmp_path / "t.json")

        async def failing():
            yield _sse(gemini_text_frame("x", usage=(5, 5)))
            raise RuntimeError("boom")

        await collect(GeminiStreamAdapter("msg", "m", ledger=ledger).adapt_stream(failing()))
        assert ledger.output_tokens == 0
