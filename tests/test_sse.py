"""Tests for the SSE module."""

import json

from dialect_proxy.core.sse import SSELineDecoder, extract_data_payload, format_sse_event


class TestSSELineDecoder:
    """Tests for incremental line splitting."""

    def test_complete_lines(self):
        decoder = SSELineDecoder()
        assert decoder.feed(b"data: a\n\ndata: b\n") == ["data: a", "", "data: b"]

    def test_partial_line_is_carried_over(self):
        decoder = SSELineDecoder()
        assert decoder.feed(b'data: {"te') == []
        assert decoder.feed(b'xt": 1}\n') == ['data: {"text": 1}']

    def test_multibyte_character_split_across_reads(self):
        encoded = "data: é\n".encode("utf-8")
        split = encoded.index(b"\xa9")
        decoder = SSELineDecoder()
        assert decoder.feed(encoded[:split]) == []
        assert decoder.feed(encoded[split:]) == ["data: é"]

    def test_crlf_is_stripped(self):
        decoder = SSELineDecoder()
        assert decoder.feed(b"data: x\r\n\r\n") == ["data: x", ""]

    def test_flush_returns_trailing_line(self):
        decoder = SSELineDecoder()
        decoder.feed(b"data: tail")
        assert decoder.flush() == ["data: tail"]
        assert decoder.flush() == []


class TestExtractDataPayload:
    """Tests for filtering SSE lines."""

    def test_data_line(self):
        assert extract_data_payload('data: {"a": 1}') == '{"a": 1}'

    def test_data_without_space(self):
        assert extract_data_payload('data:{"a": 1}') == '{"a": 1}'

    def test_ignored_lines(self):
        for line in ("", "   ", ": keep-alive", "event: ping", "data: [DONE]", "data:"):
            assert extract_data_payload(line) is None


class TestFormatSSEEvent:
    """Tests for event formatting."""

    def test_named_event(self):
        raw = format_sse_event("message_stop", {"type": "message_stop"})
        assert raw == b'event: message_stop\ndata: {"type": "message_stop"}\n\n'

    def test_non_ascii_is_kept(self):
        raw = format_sse_event("x", {"text": "héllo"})
        data_line = raw.decode("utf-8").split("\n")[1]
        assert json.loads(data_line[len("data: "):]) == {"text": "héllo"}
        assert "héllo" in raw.decode("utf-8")
