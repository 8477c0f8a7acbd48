"""Upstream SSE -> Anthropic Messages SSE re-streaming."""

from .adapter import MessagesStreamAdapter
from .gemini import GeminiStreamAdapter
from .openai import OpenAIStreamAdapter
from .session import StreamSession, StreamState, ToolCallState

__all__ = [
    "GeminiStreamAdapter",
    "MessagesStreamAdapter",
    "OpenAIStreamAdapter",
    "StreamSession",
    "StreamState",
    "ToolCallState",
    "adapter_for",
]


def adapter_for(api_type: str) -> type[MessagesStreamAdapter]:
    """Return the adapter class for a backend's ``api_type``."""
    if api_type == "openai":
        return OpenAIStreamAdapter
    return GeminiStreamAdapter
