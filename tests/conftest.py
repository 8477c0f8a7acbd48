"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

from typing import Any, AsyncIterator, Generator

import pytest

from dialect_proxy.core import clear_upstream_transports
from dialect_proxy.testing import FakeUpstream, ProxyHarness, make_config


async def aiter_chunks(chunks: list[bytes]) -> AsyncIterator[bytes]:
    """Helper to create async iterator from list of bytes."""
    for chunk in chunks:
        yield chunk


async def collect(stream: AsyncIterator[bytes]) -> list[bytes]:
    return [event async for event in stream]


# =============================================================================
# Transport Registry Fixtures
# =============================================================================


@pytest.fixture
def clear_transport_registry() -> Generator[None, None, None]:
    """Clear mounted upstream transports after test."""
    yield
    clear_upstream_transports()


# =============================================================================
# Harness Fixtures
# =============================================================================


@pytest.fixture
def gemini_harness(
    clear_transport_registry: None,
    tmp_path,
) -> Generator[tuple[FakeUpstream, ProxyHarness], None, None]:
    """Create a harness whose only model streams from a fake Gemini upstream.

    Usage:
        def test_messages(gemini_harness):
            upstream, harness = gemini_harness
            upstream.enqueue_frames([gemini_text_frame("Hi", finish_reason="STOP")])
    """
    upstream = FakeUpstream()
    harness = ProxyHarness(make_config(api_type="gemini"), status_dir=tmp_path, upstream=upstream)
    try:
        yield upstream, harness
    finally:
        harness.close()


@pytest.fixture
def openai_harness(
    clear_transport_registry: None,
    tmp_path,
) -> Generator[tuple[FakeUpstream, ProxyHarness], None, None]:
    """Create a harness whose only model streams from a fake OpenAI upstream."""
    upstream = FakeUpstream()
    harness = ProxyHarness(
        make_config(api_type="openai", target_model="gpt-4o-mini"),
        status_dir=tmp_path,
        upstream=upstream,
    )
    try:
        yield upstream, harness
    finally:
        harness.close()


def messages_request(**overrides: Any) -> dict[str, Any]:
    """A minimal streaming Messages request for the harness model."""
    payload: dict[str, Any] = {
        "model": "claude-test",
        "max_tokens": 256,
        "stream": True,
        "messages": [{"role": "user", "content": "Hello"}],
    }
    payload.update(overrides)
    return payload
