"""In-process simulation helpers for tests."""

from .assertions import assert_anthropic_sse_valid, event_names, parse_sse_events
from .fake_upstream import (
    FakeUpstream,
    UpstreamReply,
    gemini_function_call_frame,
    gemini_text_frame,
    openai_chunk,
    openai_usage_chunk,
)
from .proxy_harness import UPSTREAM_URL, ProxyHarness, make_config

__all__ = [
    "FakeUpstream",
    "ProxyHarness",
    "UPSTREAM_URL",
    "UpstreamReply",
    "assert_anthropic_sse_valid",
    "event_names",
    "gemini_function_call_frame",
    "gemini_text_frame",
    "make_config",
    "openai_chunk",
    "openai_usage_chunk",
    "parse_sse_events",
]
