"""Request transcoding between the Messages, OpenAI and Gemini dialects.

Every function here is pure: inputs are never modified and new structures
are returned, so the stages can be composed and tested independently.
"""

from .assembler import build_canonical_request
from .gemini import build_gemini_payload, thinking_directive
from .normalizer import (
    extract_text_content,
    flatten_system,
    normalize_messages,
    parse_content_block,
    parse_message,
)
from .openai import build_openai_payload
from .sanitizer import DROP_KEYS, SanitizedRequest, sanitize_root
from .tools import (
    clean_schema_for_gemini,
    map_tool_choice,
    map_tools,
    merge_tool_entries,
    remove_uri_format,
)

__all__ = [
    "DROP_KEYS",
    "SanitizedRequest",
    "build_canonical_request",
    "build_gemini_payload",
    "build_openai_payload",
    "clean_schema_for_gemini",
    "extract_text_content",
    "flatten_system",
    "map_tool_choice",
    "map_tools",
    "merge_tool_entries",
    "normalize_messages",
    "parse_content_block",
    "parse_message",
    "remove_uri_format",
    "sanitize_root",
    "thinking_directive",
]
