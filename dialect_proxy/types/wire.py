"""Wire-format types for the dialects the proxy speaks.

These are the JSON shapes as they travel over HTTP. They are typed for
readability only; nothing validates against them at runtime.
- Gemini types: streamGenerateContent request bodies and SSE frames
- Anthropic types: Messages API usage and stream events sent to the caller
"""

from typing import Any
from typing_extensions import TypedDict


# =============================================================================
# Gemini Types
# =============================================================================


class GeminiFunctionCall(TypedDict, total=False):
    """A function invocation requested by the model.

    Attributes:
        name: Declared function name.
        args: Arguments as a JSON object (never a string in this dialect).
    """
    name: str
    args: dict[str, Any]


class GeminiPart(TypedDict, total=False):
    """One part of a Gemini content turn.

    Exactly one payload field is set per part. ``thoughtSignature`` sits next
    to ``functionCall`` at the same level, never inside it.
    """
    text: str
    inlineData: dict[str, Any]
    functionCall: GeminiFunctionCall
    functionResponse: dict[str, Any]
    thoughtSignature: str
    thought: bool


class GeminiContent(TypedDict, total=False):
    """A turn in ``contents`` ("user", "model" or "function")."""
    role: str
    parts: list[GeminiPart]


class GeminiCandidate(TypedDict, total=False):
    """A candidate in a streamed frame.

    Attributes:
        content: Parts produced since the previous frame.
        finishReason: Set on the last frame: "STOP", "MAX_TOKENS", "SAFETY", ...
    """
    content: GeminiContent
    finishReason: str | None
    index: int


class GeminiUsageMetadata(TypedDict, total=False):
    """Token counts reported on (usually the last) frame."""
    promptTokenCount: int
    candidatesTokenCount: int
    totalTokenCount: int
    thoughtsTokenCount: int


class GeminiStreamChunk(TypedDict, total=False):
    """One ``data:`` frame of a streamGenerateContent?alt=sse response."""
    candidates: list[GeminiCandidate]
    usageMetadata: GeminiUsageMetadata | None
    modelVersion: str


# =============================================================================
# Anthropic Types
# =============================================================================


class AnthropicUsage(TypedDict, total=False):
    """Token usage as reported to the caller.

    Attributes:
        input_tokens: Number of tokens in the input.
        output_tokens: Number of tokens in the output.
    """
    input_tokens: int
    output_tokens: int


class AnthropicStreamEvent(TypedDict, total=False):
    """A Messages API streaming event.

    Attributes:
        type: "message_start", "content_block_start", "content_block_delta",
            "content_block_stop", "message_delta", "message_stop" or "error".
        index: Index of the content block (for block events).
        message: Message object (for "message_start").
        content_block: Content block (for "content_block_start").
        delta: Delta update (for delta events).
        usage: Usage information (for "message_delta").
        error: Error details (for "error").
    """
    type: str
    index: int | None
    message: dict[str, Any] | None
    content_block: dict[str, Any] | None
    delta: dict[str, Any] | None
    usage: AnthropicUsage | None
    error: dict[str, Any] | None
