"""Type definitions for the proxy."""

from .request import (
    CanonicalRequest,
    ContentBlock,
    GenerationParams,
    ImageBlock,
    OpaqueBlock,
    TextBlock,
    ToolDeclaration,
    ToolResultBlock,
    ToolUseBlock,
    Turn,
    embed_thought_signature,
    extract_thought_signature,
)
from .wire import (
    AnthropicStreamEvent,
    AnthropicUsage,
    GeminiCandidate,
    GeminiContent,
    GeminiPart,
    GeminiStreamChunk,
    GeminiUsageMetadata,
)

__all__ = [
    "AnthropicStreamEvent",
    "AnthropicUsage",
    "CanonicalRequest",
    "ContentBlock",
    "GeminiCandidate",
    "GeminiContent",
    "GeminiPart",
    "GeminiStreamChunk",
    "GeminiUsageMetadata",
    "GenerationParams",
    "ImageBlock",
    "OpaqueBlock",
    "TextBlock",
    "ToolDeclaration",
    "ToolResultBlock",
    "ToolUseBlock",
    "Turn",
    "embed_thought_signature",
    "extract_thought_signature",
]
